"""Demo data and maintenance commands.

``flask seed-demo`` fills the store with a few months of plausible rework
history containing patterns the insight rules are meant to find: routing
defects concentrated on one shift, crimp issues following a material batch,
soldering defects at the IGBT station and a surge in the most recent week.
``flask clear-data`` empties every collection.
"""

from __future__ import annotations

import random
from datetime import date, timedelta

import click

from config.catalogs import DEFAULT_CATALOGS, Catalogs
from rcis.db import COLLECTIONS, clear_collection, insert_records_bulk
from rcis.localtime import local_now

ROOT_CAUSES = {
    "Routing Defect": [
        "Operator followed outdated routing card version",
        "Missing route step in traveler document",
        "Incorrect station sequence on work order",
        "Routing change not communicated to shift",
    ],
    "Crimp Issue": [
        "Crimp die worn beyond tolerance limit",
        "Incorrect crimp height setting after changeover",
        "Wrong terminal size selected for wire gauge",
        "Crimp tool calibration expired",
    ],
    "Soldering Defect": [
        "Soldering iron temperature too high causing pad lift",
        "Cold solder joint due to insufficient heat",
        "Flux residue contamination on PCB",
    ],
    "Wiring Error": [
        "Wire connected to wrong terminal position",
        "Crossed wires at connector block J4",
        "Wrong wire gauge used for power circuit",
    ],
    "Component Mismatch": [
        "Similar-looking components mixed in feeder bin",
        "Incorrect BOM revision loaded in system",
    ],
    "Torque Defect": [
        "Torque wrench not calibrated, reading 20% low",
        "Operator skipped torque verification step",
    ],
}

REMARKS = [
    "Caught during in-process inspection",
    "Found at final QC checkpoint",
    "Reported by downstream station operator",
    "Discovered during functional testing",
    "Detected by automated vision system",
    "",
    "",
]

SURGE_DEFECTS = ("Routing Defect", "Crimp Issue", "Soldering Defect")


def build_demo_reworks(
    today: date,
    count: int = 150,
    rng: random.Random | None = None,
    catalogs: Catalogs = DEFAULT_CATALOGS,
    days: int = 90,
) -> list[dict]:
    """Return ``count`` rework events spread over the last ``days`` days."""

    rng = rng or random.Random()
    second_shift = catalogs.shifts[1] if len(catalogs.shifts) > 1 else catalogs.shifts[0]
    spike_batch = catalogs.material_batches[min(2, len(catalogs.material_batches) - 1)]

    reworks = []
    for _ in range(count):
        days_ago = rng.randrange(days)
        shift = second_shift if rng.random() > 0.45 else catalogs.shifts[0]

        if shift == second_shift and rng.random() > 0.35:
            defect = "Routing Defect"
        else:
            defect = rng.choice(catalogs.defect_types)

        batch = rng.choice(catalogs.material_batches)
        if batch == spike_batch and rng.random() > 0.4:
            defect = "Crimp Issue"

        station = rng.choice(catalogs.stations)
        if station == "IGBT" and rng.random() > 0.5:
            defect = "Soldering Defect"

        if days_ago <= 7 and rng.random() > 0.6:
            defect = rng.choice(SURGE_DEFECTS)

        if defect in ("Routing Defect", "Crimp Issue") and rng.random() > 0.5:
            severity = catalogs.severity_levels[-1]
        else:
            severity = rng.choice(catalogs.severity_levels)

        reworks.append(
            {
                "date": (today - timedelta(days=days_ago)).isoformat(),
                "defectType": defect,
                "station": station,
                "quantity": rng.randint(1, 6),
                "shift": shift,
                "operatorGroup": rng.choice(catalogs.operator_groups),
                "materialBatch": batch,
                "suspectedRootCause": rng.choice(ROOT_CAUSES.get(defect, ["Under investigation"])),
                "severity": severity,
                "remarks": rng.choice(REMARKS),
            }
        )
    return reworks


def build_demo_actions(today: date) -> list[dict]:
    def target(offset: int) -> str:
        return (today + timedelta(days=offset)).isoformat()

    return [
        {
            "defectType": "Routing Defect",
            "description": "Retrain second shift operators on updated routing procedure v3.2",
            "responsiblePerson": "R. Kumar",
            "targetDate": target(-5),
            "status": "Closed",
            "effectivenessReview": "Routing defects reduced by 40% after retraining.",
        },
        {
            "defectType": "Crimp Issue",
            "description": "Replace worn crimp dies and inspect dies at every batch changeover",
            "responsiblePerson": "S. Patel",
            "targetDate": target(3),
            "status": "In Progress",
            "effectivenessReview": "Die replacement 60% complete.",
        },
        {
            "defectType": "Soldering Defect",
            "description": "Calibrate IGBT soldering stations and verify temperature profiles weekly",
            "responsiblePerson": "M. Singh",
            "targetDate": target(-2),
            "status": "Open",
        },
        {
            "defectType": "Wiring Error",
            "description": "Add colour-coded wiring diagrams and poka-yoke connectors",
            "responsiblePerson": "A. Sharma",
            "targetDate": target(10),
            "status": "Open",
        },
        {
            "defectType": "Torque Defect",
            "description": "Introduce digital torque wrenches with automatic logging",
            "responsiblePerson": "K. Mishra",
            "targetDate": target(14),
            "status": "Open",
        },
    ]


def build_demo_knowledge(today: date) -> list[dict]:
    def closed(offset: int) -> str:
        return (today - timedelta(days=offset)).isoformat()

    return [
        {
            "problem": "Recurring routing defects on second shift at CVS station",
            "rootCause": "Second shift was still using routing card v2.8 after v3.2 added a QC hold point.",
            "correctiveAction": "Targeted retraining and a digital routing card that updates automatically.",
            "beforeResults": "12 routing defects/week",
            "afterResults": "3 routing defects/week",
            "station": "CVS",
            "defectType": "Routing Defect",
            "dateClosed": closed(15),
        },
        {
            "problem": "Crimp height failures after BATCH-2026-003 introduction",
            "rootCause": "Supplier changed terminal thickness by 0.05mm without notification.",
            "correctiveAction": "First-article crimp verification at every batch change and a supplier SCAR.",
            "beforeResults": "8 crimp failures/week",
            "afterResults": "1 crimp failure/week",
            "station": "Loom",
            "defectType": "Crimp Issue",
            "dateClosed": closed(30),
        },
        {
            "problem": "Cold solder joints on IGBT power module connections",
            "rootCause": "Faulty thermocouple on soldering station 3 read 15C above the real tip temperature.",
            "correctiveAction": "Replaced the thermocouple and added weekly calibration checks.",
            "beforeResults": "6 solder defects/week",
            "afterResults": "0.5 solder defects/week",
            "station": "IGBT",
            "defectType": "Soldering Defect",
            "dateClosed": closed(45),
        },
    ]


def register_commands(app) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reworks", "rework_count", default=150, show_default=True, help="Number of rework events.")
    @click.option("--seed", "seed_value", type=int, default=None, help="Random seed for repeatable data.")
    def seed_demo(rework_count: int, seed_value: int | None) -> None:
        """Insert demo reworks, corrective actions and knowledge entries."""

        today = local_now().date()
        batches = {
            "reworks": build_demo_reworks(
                today, rework_count, random.Random(seed_value), app.config["CATALOGS"]
            ),
            "actions": build_demo_actions(today),
            "knowledge": build_demo_knowledge(today),
        }
        for collection, rows in batches.items():
            inserted, error = insert_records_bulk(collection, rows)
            if error:
                raise click.ClickException(error)
            click.echo(f"Inserted {inserted} {collection} records.")

    @app.cli.command("clear-data")
    @click.confirmation_option(prompt="Delete every rework, action and knowledge record?")
    def clear_data() -> None:
        """Delete all records from every collection."""

        for collection in COLLECTIONS:
            _, error = clear_collection(collection)
            if error:
                raise click.ClickException(error)
            click.echo(f"Cleared {collection}.")
