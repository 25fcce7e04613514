from __future__ import annotations

from dataclasses import replace

from sqlalchemy import Float, String, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, mapped_column

from devkit.db import AsyncDatabaseManager, Base, create_all_tables
from geo_engine.models import Coordinate

from api.errors import SourceUnavailable
from api.models import Facility

LOCAL_ID_PREFIX = "local_"


class ClinicORM(Base):
    __tablename__ = "clinics"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)


def _clinic(id: str, name: str, address: str, lat: float, lng: float, phone: str | None = None) -> Facility:
    return Facility(
        id=id,
        name=name,
        address=address,
        coordinate=Coordinate(latitude=lat, longitude=lng),
        phone=phone,
    )


DEFAULT_CLINICS: tuple[Facility, ...] = (
    _clinic("knh", "Kenyatta National Hospital", "Hospital Rd, Upper Hill, Nairobi", -1.3011, 36.8064, "+254 20 2726300"),
    _clinic("nbi-hosp", "The Nairobi Hospital", "Argwings Kodhek Rd, Nairobi", -1.2961, 36.8050, "+254 20 2845000"),
    _clinic("akuh", "Aga Khan University Hospital", "3rd Parklands Ave, Nairobi", -1.2612, 36.8230, "+254 20 3662000"),
    _clinic("mp-shah", "M.P. Shah Hospital", "Shivachi Rd, Parklands, Nairobi", -1.2624, 36.8131),
    _clinic("mater", "Mater Misericordiae Hospital", "Dunga Rd, South B, Nairobi", -1.3082, 36.8347),
    _clinic("karen", "The Karen Hospital", "Langata Rd, Karen, Nairobi", -1.3390, 36.7115),
    _clinic("thika-l5", "Thika Level 5 Hospital", "General Kago Rd, Thika", -1.0396, 37.0760),
    _clinic("nakuru-l5", "Nakuru Level 5 Hospital", "Nakuru-Eldama Ravine Rd, Nakuru", -0.2827, 36.0735),
)


class LocalFacilityRepository:
    """Secondary facility source: the curated clinic table.

    It has no radius filter; every row is returned and the caller filters.
    """

    source_name = "secondary"

    def __init__(
        self,
        database_url: str | None = None,
        seed: tuple[Facility, ...] = DEFAULT_CLINICS,
    ) -> None:
        self._items: dict[str, Facility] = {item.id: item for item in seed}
        self._db = AsyncDatabaseManager(database_url) if database_url else None
        self._orm_ready = False

    async def close(self) -> None:
        if self._db is not None:
            await self._db.disconnect()

    async def fetch(self, center: Coordinate, radius_km: float) -> list[Facility]:
        del center, radius_km
        rows = await self.list_all()
        return [self._qualified(item) for item in rows]

    async def list_all(self) -> list[Facility]:
        if self._db is None:
            return list(self._items.values())

        async def _run(session):
            rows = (await session.scalars(select(ClinicORM).order_by(ClinicORM.id))).all()
            return [self._to_entity(row) for row in rows]

        try:
            await self._ensure_orm_ready()
            return await self._db.run_with_session(_run)
        except SQLAlchemyError as exc:
            raise SourceUnavailable(self.source_name, "clinic table query failed") from exc

    async def upsert(self, facility: Facility) -> Facility:
        if self._db is None:
            self._items[facility.id] = facility
            return facility

        await self._ensure_orm_ready()

        async def _run(session):
            row = await session.get(ClinicORM, facility.id)
            if row is None:
                row = ClinicORM(id=facility.id)
                session.add(row)
            row.name = facility.name
            row.address = facility.address
            row.latitude = facility.coordinate.latitude
            row.longitude = facility.coordinate.longitude
            row.phone = facility.phone
            return self._to_entity(row)

        return await self._db.run_with_session(_run)

    async def _ensure_orm_ready(self) -> None:
        if self._db is None or self._orm_ready:
            return

        await self._db.connect()
        await create_all_tables(self._db.engine, Base.metadata, tables=[ClinicORM.__table__])

        async def _seed_if_empty(session):
            if (await session.scalars(select(ClinicORM.id).limit(1))).first() is not None:
                return
            for item in self._items.values():
                session.add(
                    ClinicORM(
                        id=item.id,
                        name=item.name,
                        address=item.address,
                        latitude=item.coordinate.latitude,
                        longitude=item.coordinate.longitude,
                        phone=item.phone,
                    )
                )

        await self._db.run_with_session(_seed_if_empty)
        self._orm_ready = True

    def _qualified(self, facility: Facility) -> Facility:
        if facility.id.startswith(LOCAL_ID_PREFIX):
            return facility
        return replace(facility, id=f"{LOCAL_ID_PREFIX}{facility.id}")

    def _to_entity(self, row: ClinicORM) -> Facility:
        return Facility(
            id=row.id,
            name=row.name,
            address=row.address,
            coordinate=Coordinate(latitude=row.latitude, longitude=row.longitude),
            phone=row.phone,
        )
