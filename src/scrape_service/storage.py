from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import boto3
import redis.asyncio as redis
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, UniqueConstraint, func, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from failcat.data_models import Car, SerialNumber, Vin
from failcat.errors import InvariantViolation, StorageError, StorageWriteFailed
from scrape_service.gaps import gap_above, gap_above_stmt, gap_below, gap_below_stmt

logger = logging.getLogger(__name__)

metadata = MetaData()

cars_table = Table(
    "cars",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("vin", String(17), nullable=False, index=True),
    Column("ext_color", String(128), nullable=False),
    Column("int_color", String(128), nullable=False),
    Column("car_model", String(256), nullable=False),
    Column("opt_code", String(64), nullable=False),
    Column("ship_to", String(64), nullable=False),
    Column("sold_to", String(64), nullable=False),
    Column("created_date", DateTime(timezone=True), nullable=False),
    Column("serial_number", Integer, nullable=False),
    Column("model_year", String(16), nullable=False),
    Column("dead_until", String(64), nullable=True),
    Column("last_attempt", String(64), nullable=True),
    UniqueConstraint("serial_number", name="uq_cars_serial_number"),
)

_CAR_COLUMNS = (
    "vin", "ext_color", "int_color", "car_model", "opt_code", "ship_to", "sold_to",
    "created_date", "serial_number", "model_year", "dead_until", "last_attempt",
)


def _car_row(car: Car) -> dict[str, Any]:
    return {name: getattr(car, name) for name in _CAR_COLUMNS}


def _row_to_car(row: dict[str, Any]) -> Car:
    return Car(id=row["id"], **{name: row[name] for name in _CAR_COLUMNS})


class RedisCache:
    """Mirror of persisted cars keyed by serial number. Entries never expire."""

    def __init__(self, redis_url: str, namespace: str = "vinscrapes") -> None:
        self.redis_url = redis_url
        self.namespace = namespace
        self._client: Any = None
        self._mem: dict[str, str] = {}

    def _build_key(self, serial: SerialNumber) -> str:
        return f"{self.namespace}:{serial}"

    async def connect(self) -> None:
        self._client = redis.from_url(self.redis_url, decode_responses=True)
        try:
            await asyncio.wait_for(self._client.ping(), timeout=0.75)
        except Exception:
            logger.warning("Redis unreachable at %s, caching cars in process", self.redis_url)
            self._client = None

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await asyncio.wait_for(self._client.ping(), timeout=0.75))
        except Exception:
            return False

    async def get_car(self, serial: SerialNumber) -> Car | None:
        key = self._build_key(serial)
        if self._client is not None:
            try:
                raw = await self._client.get(key)
            except Exception as exc:
                # an unreadable cache entry is treated as absent; the relational
                # unique constraint still prevents a duplicate row
                logger.warning("Redis read failed for %s: %s", key, exc)
                return None
        else:
            raw = self._mem.get(key)
        return None if raw is None else Car.from_json(json.loads(raw))

    async def put_car(self, car: Car, sql_id: int) -> None:
        if car.id is None or car.id != sql_id:
            raise InvariantViolation(
                f"Cached car id {car.id!r} does not match relational id {sql_id!r} "
                f"for serial {car.serial_number}"
            )
        key = self._build_key(car.serial_number)
        payload = json.dumps(car.to_json())
        if self._client is None:
            self._mem[key] = payload
            return
        try:
            await self._client.set(key, payload)
        except Exception as exc:
            raise StorageWriteFailed(f"Could not write {key} to redis: {exc}") from exc


class PdfBucket:
    """Raw window-sticker documents keyed by VIN, stored in S3."""

    def __init__(self, bucket: str, endpoint_url: str = "", region: str = "us-east-1") -> None:
        self.bucket = bucket
        self.endpoint_url = endpoint_url or None
        self.region = region
        self._client: Any = None
        self._mem: dict[str, bytes] = {}

    async def connect(self) -> None:
        if not self.bucket:
            logger.info("No PDF bucket configured, keeping documents in process")
            return
        self._client = boto3.client("s3", region_name=self.region, endpoint_url=self.endpoint_url)

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            await asyncio.to_thread(self._client.head_bucket, Bucket=self.bucket)
            return True
        except (BotoCoreError, ClientError):
            return False

    async def get(self, vin: Vin) -> bytes | None:
        if self._client is None:
            return self._mem.get(vin)
        try:
            response = await asyncio.to_thread(self._client.get_object, Bucket=self.bucket, Key=vin)
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            raise StorageError(f"Could not read {vin} from bucket {self.bucket}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Could not read {vin} from bucket {self.bucket}: {exc}") from exc

    async def put(self, vin: Vin, data: bytes) -> None:
        if self._client is None:
            self._mem[vin] = bytes(data)
            return
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=vin,
                Body=data,
                ContentType="application/pdf",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageWriteFailed(f"Could not store {vin} in bucket {self.bucket}: {exc}") from exc


class PostgresStore:
    def __init__(self, dsn: str) -> None:
        self.dsn = dsn
        self.engine: AsyncEngine | None = None
        self._fallback_mode = False
        self._mem_cars: dict[SerialNumber, dict[str, Any]] = {}
        self._next_id = 1

    async def connect(self) -> None:
        try:
            self.engine = create_async_engine(self.dsn, future=True)
            await self.init_schema()
        except Exception:
            logger.warning("Database unreachable, storing cars in process")
            self._fallback_mode = True
            self.engine = None

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()

    async def ping(self) -> bool:
        if self.engine is None:
            return False
        if self._fallback_mode:
            return False
        try:
            async with self.engine.connect() as conn:
                await conn.execute(select(1))
            return True
        except Exception:
            return False

    async def init_schema(self) -> None:
        if self.engine is None:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def _first(self, stmt: Any) -> Any:
        try:
            async with self.engine.connect() as conn:
                return (await conn.execute(stmt)).first()
        except SQLAlchemyError as exc:
            raise StorageError(f"Query against cars failed: {exc}") from exc

    async def get_car(self, car_id: int) -> Car | None:
        if self.engine is None:
            for row in self._mem_cars.values():
                if row["id"] == car_id:
                    return _row_to_car(row)
            return None
        row = await self._first(select(cars_table).where(cars_table.c.id == car_id))
        return _row_to_car(dict(row._mapping)) if row else None

    async def get_car_by_serial(self, serial: SerialNumber) -> Car | None:
        if self.engine is None:
            row = self._mem_cars.get(serial)
            return None if row is None else _row_to_car(row)
        row = await self._first(select(cars_table).where(cars_table.c.serial_number == serial))
        return _row_to_car(dict(row._mapping)) if row else None

    async def get_car_id(self, serial: SerialNumber) -> int | None:
        if self.engine is None:
            row = self._mem_cars.get(serial)
            return None if row is None else row["id"]
        row = await self._first(select(cars_table.c.id).where(cars_table.c.serial_number == serial))
        return None if row is None else row.id

    async def get_or_create(self, car: Car) -> int:
        existing = await self.get_car_id(car.serial_number)
        if existing is not None:
            logger.info("Car for serial %s already stored with id %s", car.serial_number, existing)
            return existing

        row = _car_row(car)
        if self.engine is None:
            row["id"] = self._next_id
            self._next_id += 1
            self._mem_cars[car.serial_number] = row
            return row["id"]

        try:
            async with self.engine.begin() as conn:
                await conn.execute(insert(cars_table).values(**row))
        except IntegrityError:
            # another scrape inserted this serial first; adopt its row below
            logger.info("Lost insert race for serial %s, adopting existing row", car.serial_number)
        except SQLAlchemyError as exc:
            raise StorageWriteFailed(f"Could not insert car for serial {car.serial_number}: {exc}") from exc

        car_id = await self.get_car_id(car.serial_number)
        if car_id is None:
            raise InvariantViolation(f"Car for serial {car.serial_number} missing right after insert")
        return car_id

    async def list_cars(self, page: int = 1, page_size: int = 50) -> list[Car]:
        offset = (max(page, 1) - 1) * page_size
        if self.engine is None:
            rows = sorted(self._mem_cars.values(), key=lambda r: r["id"], reverse=True)
            return [_row_to_car(r) for r in rows[offset:offset + page_size]]
        stmt = select(cars_table).order_by(cars_table.c.id.desc()).limit(page_size).offset(offset)
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not list cars: {exc}") from exc
        return [_row_to_car(dict(r._mapping)) for r in rows]

    async def highest_serial(self) -> SerialNumber:
        if self.engine is None:
            return max(self._mem_cars, default=0)
        row = await self._first(select(func.max(cars_table.c.serial_number)))
        return 0 if row is None or row[0] is None else int(row[0])

    async def first_unknown_serial_above(self, lower_bound: SerialNumber) -> SerialNumber | None:
        if self.engine is None:
            return gap_above(self._mem_cars, lower_bound)
        row = await self._first(gap_above_stmt(cars_table, lower_bound))
        return None if row is None else int(row.serial_number)

    async def first_unknown_serial_below(self, upper_bound: SerialNumber) -> SerialNumber | None:
        if self.engine is None:
            return gap_below(self._mem_cars, upper_bound)
        row = await self._first(gap_below_stmt(cars_table, upper_bound))
        return None if row is None else int(row.serial_number)
