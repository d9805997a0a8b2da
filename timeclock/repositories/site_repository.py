"""현장 레포지토리 — 현장 지오펜스 조회 담당.

Site Repository — Read access to the sites registry.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.models.site import Site
from timeclock.repositories.base import BaseRepository


@dataclass(frozen=True)
class Geofence:
    """현장 지오펜스 — A site's permitted boundary.

    Attributes:
        center_latitude: 중심 위도, 없으면 None (Center latitude or None)
        center_longitude: 중심 경도, 없으면 None (Center longitude or None)
        radius_m: 허용 반경(미터) (Radius tolerance in meters)
        polygon: [[경도, 위도], ...] 외곽 링, 없으면 None (Outer ring or None)
    """

    center_latitude: float | None
    center_longitude: float | None
    radius_m: float
    polygon: list[list[float]] | None

    @property
    def has_center(self) -> bool:
        return self.center_latitude is not None and self.center_longitude is not None

    @property
    def has_polygon(self) -> bool:
        return bool(self.polygon) and len(self.polygon) >= 3

    @property
    def is_defined(self) -> bool:
        return self.has_center or self.has_polygon


class SiteRepository(BaseRepository[Site]):
    """현장 레포지토리.

    Site repository exposing the geofence lookup.

    Extends:
        BaseRepository[Site]
    """

    def __init__(self) -> None:
        super().__init__(Site)

    async def get_geofence(
        self,
        db: AsyncSession,
        site_id: UUID,
    ) -> Geofence | None:
        """현장의 지오펜스를 조회합니다.

        Retrieve a site's geofence.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            site_id: 현장 UUID (Site UUID)

        Returns:
            Geofence | None: 지오펜스, 현장이 없으면 None (Geofence, or None when the site is unknown)
        """
        site: Site | None = await self.get_by_id(db, site_id)
        if site is None:
            return None
        return Geofence(
            center_latitude=site.latitude,
            center_longitude=site.longitude,
            radius_m=float(site.geofence_radius or 0),
            polygon=site.geofence_polygon,
        )


# 싱글턴 인스턴스 — Singleton instance
site_repository: SiteRepository = SiteRepository()
