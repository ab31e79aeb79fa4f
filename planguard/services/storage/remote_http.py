"""
Remote Plan API Storage Implementation

DESIGN DECISION: The hosted backend is a relational database behind a
small JSON API. This client is deliberately thin:
1. One HTTP round trip per mutating call
2. Multi-row writes are a single request; the server runs them in one
   transaction, so a partial scenario replace is never observable
3. No retries and no default timeout; retry and timeout policy belong
   to the caller

Wire format (JSON):
    GET    /api/plan?assumption=NAME  -> {series, lastUpdated, meta, assumptions, assumption}
    POST   /api/plan                  <- {seriesByAssumption, replace, meta}
    GET    /api/actuals               -> {actuals, lastUpdated}
    POST   /api/actuals               <- {date, actual_total_savings}
    PUT    /api/actuals/{date}        <- {actual_total_savings}   (404 if absent)
    DELETE /api/actuals/{date}
    GET    /api/settings              -> {lowerPct, upperPct}
    POST   /api/settings              <- {lowerPct, upperPct}

A plan point is {date, plan_total_savings}; an actual is
{date, actual_total_savings}. With replace=false the server replaces
only the scenarios present in seriesByAssumption.
"""

from datetime import datetime
from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError

from planguard.models.plan import (
    DEFAULT_SCENARIO,
    ActualEntry,
    ActualsSnapshot,
    GuardrailSettings,
    ItemSelection,
    PlanPoint,
    PlanSnapshot,
    UploadMeta,
    date_key,
    pick_scenario,
)
from planguard.services.storage.interface import (
    ConnectionError,
    DateLike,
    InvalidDataError,
    NotFoundError,
    PlanStorageInterface,
    StorageError,
    prepare_plan_set,
)


logger = structlog.get_logger(__name__)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("unparseable_timestamp", value=value)
        return None


class HttpPlanStorage(PlanStorageInterface):
    """
    Remote plan API implementation of plan storage.

    Pass an httpx.AsyncClient to share a connection pool (or a mock
    transport in tests); otherwise one is created from base_url.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        default_scenario: str = DEFAULT_SCENARIO,
        default_settings: Optional[GuardrailSettings] = None,
    ):
        if client is None:
            if not base_url:
                raise ValueError("base_url is required when no client is given")
            headers = {"Accept": "application/json"}
            if api_token:
                headers["Authorization"] = f"Bearer {api_token}"
            client = httpx.AsyncClient(
                base_url=base_url,
                headers=headers,
                timeout=timeout,
            )
            self._owns_client = True
        else:
            self._owns_client = False
        self._client = client
        self._default_scenario = default_scenario
        self._default_settings = default_settings or GuardrailSettings()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send one request and map failures onto the storage errors."""
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning("remote_store_unreachable", method=method, path=path, error=str(e))
            raise ConnectionError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"{method} {path}: not found")
        if response.status_code in (400, 422):
            raise InvalidDataError(f"{method} {path} rejected: {response.text}")
        if response.is_error:
            raise StorageError(
                f"{method} {path} failed with HTTP {response.status_code}: {response.text}"
            )
        return response

    async def _get_json(self, path: str, params: Optional[dict] = None) -> dict:
        response = await self._request("GET", path, params=params)
        try:
            payload = response.json()
        except ValueError as e:
            raise StorageError(f"GET {path} returned invalid JSON") from e
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise StorageError(f"GET {path} returned a non-object payload")
        return payload

    # -------------------------------------------------------------------------
    # Plan
    # -------------------------------------------------------------------------

    @staticmethod
    def _meta_from_wire(raw: Any) -> Optional[UploadMeta]:
        """Upload metadata from the wire; uploaded_at stays None if the server omits it."""
        if not raw:
            return None
        if not isinstance(raw, dict):
            raise StorageError(f"Malformed upload metadata: {raw!r}")
        if not raw.get("filename"):
            return None
        items = raw.get("items") or {}
        if not isinstance(items, dict):
            raise StorageError(f"Malformed upload item selection: {items!r}")
        try:
            return UploadMeta(
                filename=raw["filename"],
                scenario=raw.get("assumption"),
                items=ItemSelection(
                    include=items.get("include") or [],
                    exclude=items.get("exclude") or [],
                ),
                uploaded_at=_parse_timestamp(raw.get("uploaded_at")),
            )
        except ValidationError as e:
            raise StorageError(f"Malformed upload metadata: {e}") from e

    @staticmethod
    def _scenarios_from_wire(payload: dict) -> list[str]:
        names = payload.get("assumptions") or []
        if not isinstance(names, list):
            raise StorageError(f"Malformed scenario list: {names!r}")
        return sorted(str(name) for name in names)

    @staticmethod
    def _meta_to_wire(meta: Optional[UploadMeta]) -> Optional[dict]:
        if meta is None:
            return None
        return {
            "filename": meta.filename,
            "assumption": meta.scenario,
            "items": meta.items.model_dump(),
        }

    async def get_plan(self, scenario: Optional[str] = None) -> PlanSnapshot:
        """Read one scenario's plan series."""
        params = {"assumption": scenario} if scenario else None
        payload = await self._get_json("/api/plan", params=params)

        scenarios = self._scenarios_from_wire(payload)
        meta = self._meta_from_wire(payload.get("meta"))
        chosen = pick_scenario(scenario, scenarios, meta, self._default_scenario)

        served = payload.get("assumption") or self._default_scenario
        if scenario is None and chosen is not None and chosen != served:
            payload = await self._get_json("/api/plan", params={"assumption": chosen})

        try:
            series = [
                PlanPoint(date=point["date"], value=point["plan_total_savings"])
                for point in payload.get("series") or []
            ]
        except (KeyError, TypeError, ValidationError) as e:
            raise StorageError(f"Malformed plan payload: {e}") from e

        return PlanSnapshot(
            series=sorted(series, key=lambda p: p.date),
            last_updated=_parse_timestamp(payload.get("lastUpdated")),
            meta=meta,
            scenarios=scenarios,
            scenario=chosen,
        )

    async def save_plan(
        self,
        series: list[PlanPoint],
        meta: Optional[UploadMeta] = None,
        scenario: Optional[str] = None,
    ) -> None:
        """Replace one scenario's plan series."""
        await self.save_plans(
            {scenario or self._default_scenario: series},
            replace=False,
            meta=meta,
        )

    async def save_plans(
        self,
        series_by_scenario: dict[str, list[PlanPoint]],
        replace: bool = True,
        meta: Optional[UploadMeta] = None,
    ) -> None:
        """Save several scenarios in one request."""
        prepared = prepare_plan_set(series_by_scenario)
        body = {
            "seriesByAssumption": {
                name: [
                    {"date": day, "plan_total_savings": value}
                    for day, value in sorted(points.items())
                ]
                for name, points in prepared.items()
            },
            "replace": replace,
            "meta": self._meta_to_wire(meta),
        }
        await self._request("POST", "/api/plan", json=body)
        logger.info("plan_saved", scenarios=list(prepared), replace=replace, backend="remote")

    async def get_scenarios(self) -> list[str]:
        """List stored scenario names."""
        payload = await self._get_json("/api/plan")
        return self._scenarios_from_wire(payload)

    # -------------------------------------------------------------------------
    # Actuals
    # -------------------------------------------------------------------------

    @staticmethod
    def _entry(on: DateLike, value: float) -> ActualEntry:
        try:
            return ActualEntry(date=on, value=value)
        except ValidationError as e:
            raise InvalidDataError(f"Invalid actual for {on!r}: {e}") from e

    async def get_actuals(self) -> ActualsSnapshot:
        """Read every actual entry."""
        payload = await self._get_json("/api/actuals")

        latest: dict[str, ActualEntry] = {}
        try:
            for raw in payload.get("actuals") or []:
                entry = ActualEntry(date=raw["date"], value=raw["actual_total_savings"])
                latest[entry.date.isoformat()] = entry
        except (KeyError, TypeError, ValidationError) as e:
            raise StorageError(f"Malformed actuals payload: {e}") from e

        return ActualsSnapshot(
            actuals=[latest[key] for key in sorted(latest)],
            last_updated=_parse_timestamp(payload.get("lastUpdated")),
        )

    async def upsert_actual(self, on: DateLike, value: float) -> None:
        """Create or overwrite the actual for a date."""
        entry = self._entry(on, value)
        await self._request(
            "POST",
            "/api/actuals",
            json={"date": entry.date.isoformat(), "actual_total_savings": entry.value},
        )

    async def update_actual(self, on: DateLike, value: float) -> None:
        """Overwrite an existing actual."""
        entry = self._entry(on, value)
        key = entry.date.isoformat()
        try:
            await self._request(
                "PUT",
                f"/api/actuals/{key}",
                json={"actual_total_savings": entry.value},
            )
        except NotFoundError:
            raise NotFoundError(f"No actual recorded for {key}") from None

    async def delete_actual(self, on: DateLike) -> None:
        """Delete the actual for a date, if any."""
        try:
            key = date_key(on)
        except ValueError as e:
            raise InvalidDataError(str(e)) from e
        try:
            await self._request("DELETE", f"/api/actuals/{key}")
        except NotFoundError:
            pass

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def get_settings(self) -> GuardrailSettings:
        """Read guardrail settings, falling back to the defaults per field."""
        payload = await self._get_json("/api/settings")
        lower = payload.get("lowerPct")
        upper = payload.get("upperPct")
        try:
            return GuardrailSettings.from_percentages(
                self._default_settings.lower_pct if lower is None else lower,
                self._default_settings.upper_pct if upper is None else upper,
            )
        except ValueError as e:
            raise StorageError(f"Malformed settings payload: {e}") from e

    async def save_settings(self, lower_pct: float, upper_pct: float) -> GuardrailSettings:
        """Overwrite guardrail settings."""
        try:
            settings = GuardrailSettings.from_percentages(lower_pct, upper_pct)
        except ValueError as e:
            raise InvalidDataError(str(e)) from e

        await self._request(
            "POST",
            "/api/settings",
            json={"lowerPct": settings.lower_pct, "upperPct": settings.upper_pct},
        )
        return settings

    async def aclose(self) -> None:
        """Close the HTTP client if this storage created it."""
        if self._owns_client:
            await self._client.aclose()
