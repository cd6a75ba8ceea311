from __future__ import annotations

import time
from pathlib import Path
from typing import Any

import polars as pl
from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from delivery_planner.exceptions import InvalidAddressError, InvalidCoordinatesError
from delivery_planner.services.geocoding import Geocoder
from delivery_planner.services.itinerary import ItineraryController
from delivery_planner.services.location import ReportedLocationProvider
from delivery_planner.services.storage import ItineraryStore


class Command(BaseCommand):
    help = "Import delivery stops for a courier from a CSV, geocoding rows without coordinates."

    def add_arguments(self, parser: Any) -> None:
        parser.add_argument("--csv-path", type=str, required=True, help="Path to the stops CSV")
        parser.add_argument(
            "--client-id", type=str, required=True, help="Courier client id to import into"
        )
        parser.add_argument(
            "--replace",
            action="store_true",
            help="Replace the courier's existing stops instead of appending",
        )
        parser.add_argument(
            "--sleep-seconds",
            type=float,
            default=1.1,
            help="Sleep interval between geocoding requests",
        )

    def handle(self, *_: Any, **options: Any) -> None:
        csv_path = Path(options["csv_path"])
        if not csv_path.exists():
            raise CommandError(f"CSV file does not exist: {csv_path}")

        client_id = options["client_id"]
        sleep_seconds = max(0.0, options["sleep_seconds"])
        records = self._load_and_transform(csv_path).to_dicts()

        store = ItineraryStore()
        existing = [] if options["replace"] else store.load(client_id)
        controller = ItineraryController(
            ReportedLocationProvider(), stops=existing, location_poll_seconds=0
        )

        geocoder: Geocoder | None = None
        added = 0
        failed = 0
        for row in records:
            coordinates = None
            if row["longitude"] is not None and row["latitude"] is not None:
                coordinates = (row["longitude"], row["latitude"])
            else:
                geocoder = geocoder or Geocoder()
                try:
                    coordinates = async_to_sync(geocoder.geocode)(row["address"]).coordinates
                except InvalidAddressError:
                    self.stdout.write(self.style.WARNING(f"Could not geocode: {row['address']}"))
                    failed += 1
                    continue
                finally:
                    if sleep_seconds:
                        time.sleep(sleep_seconds)

            try:
                controller.add_stop(row["address"], coordinates)
                added += 1
            except InvalidCoordinatesError:
                self.stdout.write(self.style.WARNING(f"Invalid coordinates: {row['address']}"))
                failed += 1

        store.save(client_id, controller.stops)
        self.stdout.write(
            self.style.SUCCESS(
                f"Imported stops for {client_id}: {added} added, {failed} failed, "
                f"{len(controller.stops)} total"
            )
        )

    @staticmethod
    def _load_and_transform(csv_path: Path) -> pl.DataFrame:
        frame = pl.read_csv(csv_path, infer_schema_length=5000)
        if "Address" not in frame.columns:
            raise CommandError("Missing expected column: Address")

        for column in ("Longitude", "Latitude"):
            if column not in frame.columns:
                frame = frame.with_columns(pl.lit(None, dtype=pl.Float64).alias(column))

        return (
            frame.select(
                pl.col("Address")
                .cast(pl.Utf8, strict=False)
                .str.strip_chars()
                .fill_null("")
                .alias("address"),
                pl.col("Longitude").cast(pl.Float64, strict=False).alias("longitude"),
                pl.col("Latitude").cast(pl.Float64, strict=False).alias("latitude"),
            )
            .filter(pl.col("address").str.len_chars() > 0)
            .unique(subset=["address"], keep="first", maintain_order=True)
        )
