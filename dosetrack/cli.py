import argparse
import csv
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List

from .errors import DosageError
from .lifecycle import create_pattern
from .medication import Medication, MedicationFrequency, MedicationType, PatternDose
from .pattern import PatternInput, format_dose
from .resolver import PatternResolver
from .schedule import ScheduleGenerator
from .store import InMemoryPatternStore


def parse_pattern(text: str) -> List[Decimal]:
    try:
        return [Decimal(v.strip()) for v in text.split(",") if v.strip()]
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid pattern: {text!r}")


def build_store(args: argparse.Namespace):
    medication = Medication(
        id=1,
        name=args.name,
        fixed_dose=args.fixed_dose,
        type=MedicationType(args.type),
        dosage_unit=args.unit,
        frequency=MedicationFrequency(args.frequency),
        start_date=args.start,
    )
    store = InMemoryPatternStore()
    created = create_pattern(
        store,
        medication,
        PatternInput(sequence=tuple(args.pattern), start_date=args.start),
        max_backdate_days=None,
    )
    for warning in created.warnings:
        print(f"warning: {warning.message}", file=sys.stderr)
    return medication, store


def run_cli() -> None:
    parser = argparse.ArgumentParser(description="DoseTrack - dosage pattern schedules")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--pattern", type=parse_pattern, required=True, help="Comma-separated doses, e.g. '4,4,3'")
        p.add_argument("--start", type=date.fromisoformat, required=True, help="Pattern start date (YYYY-MM-DD)")
        p.add_argument("--name", type=str, default="Medication", help="Medication name")
        p.add_argument("--type", choices=[t.value for t in MedicationType], default=MedicationType.OTHER.value)
        p.add_argument("--frequency", choices=[f.value for f in MedicationFrequency], default=MedicationFrequency.ONCE_DAILY.value)
        p.add_argument("--fixed-dose", type=Decimal, default=Decimal("0"), help="Fallback fixed dose")
        p.add_argument("--unit", type=str, default="mg", help="Dosage unit")

    p_schedule = sub.add_parser("schedule", help="Write a day-by-day schedule to CSV")
    add_common(p_schedule)
    p_schedule.add_argument("--from", dest="from_date", type=date.fromisoformat, help="First schedule date (default: pattern start)")
    p_schedule.add_argument("--days", type=int, default=14, help="Number of days (1-365)")
    p_schedule.add_argument("--csv", type=str, default="schedule.csv", help="Output CSV path")

    p_dose = sub.add_parser("dose", help="Print the expected dose for one date")
    add_common(p_dose)
    p_dose.add_argument("--date", type=date.fromisoformat, required=True)

    args = parser.parse_args()

    try:
        medication, store = build_store(args)
    except DosageError as e:
        raise SystemExit(f"error: {e}")

    if args.cmd == "dose":
        source = PatternResolver(store).dose_for(medication, args.date)
        if source is None:
            print(f"{args.date.isoformat()}: no dose scheduled")
        elif isinstance(source, PatternDose):
            print(f"{args.date.isoformat()}: {format_dose(source.dose)}{args.unit} (Day {source.day_number}/{source.pattern.length})")
        else:
            print(f"{args.date.isoformat()}: {format_dose(source.dose)}{args.unit}")
        return

    try:
        schedule = ScheduleGenerator(store).generate_schedule(
            medication, args.from_date or args.start, args.days
        )
    except DosageError as e:
        raise SystemExit(f"error: {e}")

    with open(args.csv, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["date", "day_of_week", "dose", "pattern_day", "pattern_length", "is_pattern_change"])
        for entry in schedule.entries:
            writer.writerow([
                entry.date.isoformat(),
                entry.day_of_week,
                "" if entry.dose is None else format_dose(entry.dose),
                entry.pattern_day or "",
                entry.pattern_length or "",
                int(entry.is_pattern_change),
            ])
    summary = schedule.summary
    print(
        f"{schedule.total_days} days, total {format_dose(summary.total_dose)}{args.unit}, "
        f"average {format_dose(summary.average_daily_dose)}{args.unit}, cycles {summary.pattern_cycles}"
    )


if __name__ == "__main__":
    run_cli()
