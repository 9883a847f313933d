"""Home Assistant REST client.

Thin asynchronous wrapper around the Home Assistant REST API using httpx:
areas and their entities via the template API, entity states, service calls
and state history.
"""
import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ha2tg.core.constants import SUPPORTED_DOMAINS
from ha2tg.hass.models import Area, Entity, HistoryResult


class HomeAssistantError(Exception):
    """Raised when Home Assistant is unreachable or rejects a request."""


ROOMS_TEMPLATE = """
{%- set domains = DOMAINS -%}
{%- set ns = namespace(rooms=[]) -%}
{%- for a in areas() -%}
  {%- set ents = namespace(items=[]) -%}
  {%- for e in area_entities(a) -%}
    {%- if e.split('.')[0] in domains -%}
      {%- set ents.items = ents.items + [{
        "entity_id": e,
        "state": states(e),
        "friendly_name": state_attr(e, 'friendly_name') | default(e, true),
        "device_class": state_attr(e, 'device_class') | default('', true)
      }] -%}
    {%- endif -%}
  {%- endfor -%}
  {%- if ents.items | length > 0 -%}
    {%- set ns.rooms = ns.rooms + [{
      "id": a,
      "name": area_name(a) | default(a, true),
      "entities": ents.items
    }] -%}
  {%- endif -%}
{%- endfor -%}
{{ ns.rooms | tojson }}
""".replace("DOMAINS", json.dumps(list(SUPPORTED_DOMAINS)))


def _parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class HomeAssistantClient:
    """Asynchronous Home Assistant REST client with bearer token auth."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 10.0,
        connect_timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise HomeAssistantError(f"{method} {url} failed: {e}") from e
        if response.is_error and response.status_code != 404:
            raise HomeAssistantError(
                f"HA API error {response.status_code} for {url}: {response.text[:200]}"
            )
        return response

    async def render_template(self, template: str) -> Any:
        """Render a template server-side and parse the JSON it produced."""
        response = await self._request("POST", "/api/template", json={"template": template})
        if response.status_code == 404:
            raise HomeAssistantError("Template API not available")
        try:
            return json.loads(response.text)
        except ValueError as e:
            raise HomeAssistantError(f"Template did not render JSON: {e}") from e

    async def fetch_rooms(self) -> List[Area]:
        """Areas holding at least one supported entity."""
        raw = await self.render_template(ROOMS_TEMPLATE)
        try:
            return [
                Area(
                    id=room["id"],
                    name=room.get("name") or room["id"],
                    entities=[
                        Entity(
                            entity_id=e["entity_id"],
                            state=str(e.get("state", "")),
                            friendly_name=e.get("friendly_name") or "",
                            device_class=e.get("device_class") or "",
                        )
                        for e in room.get("entities", [])
                    ],
                )
                for room in raw
            ]
        except (KeyError, TypeError) as e:
            raise HomeAssistantError(f"Unexpected rooms payload: {e}") from e

    async def fetch_state(self, entity_id: str) -> Optional[Entity]:
        response = await self._request("GET", f"/api/states/{entity_id}")
        if response.status_code == 404:
            return None
        try:
            return Entity.from_state(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise HomeAssistantError(f"Bad state for {entity_id}: {e}") from e

    async def fetch_states(self, entity_ids: Sequence[str]) -> List[Entity]:
        """Current states, in request order. Unknown entities are skipped."""
        if not entity_ids:
            return []
        results = await asyncio.gather(*(self.fetch_state(eid) for eid in entity_ids))
        return [e for e in results if e is not None]

    async def call_service(
        self,
        domain: str,
        service: str,
        entity_id: str,
        data: Optional[Dict[str, Any]] = None
    ) -> None:
        body = dict(data or {})
        body["entity_id"] = entity_id
        logging.info("Calling %s.%s on %s", domain, service, entity_id)
        response = await self._request("POST", f"/api/services/{domain}/{service}", json=body)
        if response.status_code == 404:
            raise HomeAssistantError(f"Service {domain}.{service} not found")

    async def fetch_history(
        self,
        entity_id: str,
        hours: int,
        offset: int = 0,
        now: Optional[datetime] = None
    ) -> HistoryResult:
        """State samples over ``hours`` ending ``offset`` hours from now.

        When the window holds no samples the current state is used as the
        value at the window start, and the last value is always extended to
        the window end so the series covers the whole period.
        """
        now = now or datetime.now(timezone.utc)
        end_time = now + timedelta(hours=offset)
        start_time = end_time - timedelta(hours=hours)

        response = await self._request(
            "GET",
            f"/api/history/period/{start_time.isoformat()}",
            params={
                "end_time": end_time.isoformat(),
                "filter_entity_id": entity_id,
                "no_attributes": "",
            },
        )
        points = []
        if response.status_code != 404:
            try:
                for series in response.json():
                    for item in series:
                        stamp = item.get("last_updated") or item.get("last_changed")
                        points.append((_parse_time(stamp), str(item["state"])))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                raise HomeAssistantError(f"Bad history for {entity_id}: {e}") from e

        if not points:
            logging.debug("Gap detected for %s, backfilling from current state", entity_id)
            current = await self.fetch_state(entity_id)
            if current is not None:
                points.append((start_time, current.state))

        if points:
            points.append((end_time, points[-1][1]))

        logging.debug(
            "Fetched %d points for %s [%s -> %s]",
            len(points), entity_id, start_time.isoformat(), end_time.isoformat()
        )
        return HistoryResult(points=points, start_time=start_time, end_time=end_time)
