# This project was developed with assistance from AI tools.
"""ATTOM property-data client used for valuation autofill.

Lookups try the detail, address, and basic-address endpoints with several
address parameter shapes, preferring the first record that carries
assessment, sale, or owner detail. Results are cached per normalized
address in an owned ``TTLCache``.
"""

import logging
import re
from collections.abc import Iterable

import httpx

from ..core.config import Settings
from ..core.errors import UpstreamError
from ..schemas.valuation import PropertyValuation
from .cache import TTLCache

logger = logging.getLogger(__name__)

_ENDPOINT_SUFFIXES = ("detail", "address", "basicaddress")

_STREET_REPLACEMENTS = (
    (r"\s+Ste\.?\s+\w+", ""),
    (r"\s+Unit\s+\w+", ""),
    (r"\bParkway\b", "Pkwy"),
    (r"\bBoulevard\b", "Blvd"),
    (r"\bAvenue\b", "Ave"),
    (r"\bStreet\b", "St"),
    (r"\bRoad\b", "Rd"),
    (r"\bDrive\b", "Dr"),
    (r"\bLane\b", "Ln"),
    (r"\bCourt\b", "Ct"),
    (r"\bEast\b", "E"),
    (r"\bWest\b", "W"),
    (r"\bNorth\b", "N"),
    (r"\bSouth\b", "S"),
)

STATE_CODES = {
    "ALABAMA": "AL", "ALASKA": "AK", "ARIZONA": "AZ", "ARKANSAS": "AR",
    "CALIFORNIA": "CA", "COLORADO": "CO", "CONNECTICUT": "CT", "DELAWARE": "DE",
    "FLORIDA": "FL", "GEORGIA": "GA", "HAWAII": "HI", "IDAHO": "ID",
    "ILLINOIS": "IL", "INDIANA": "IN", "IOWA": "IA", "KANSAS": "KS",
    "KENTUCKY": "KY", "LOUISIANA": "LA", "MAINE": "ME", "MARYLAND": "MD",
    "MASSACHUSETTS": "MA", "MICHIGAN": "MI", "MINNESOTA": "MN", "MISSISSIPPI": "MS",
    "MISSOURI": "MO", "MONTANA": "MT", "NEBRASKA": "NE", "NEVADA": "NV",
    "NEW HAMPSHIRE": "NH", "NEW JERSEY": "NJ", "NEW MEXICO": "NM", "NEW YORK": "NY",
    "NORTH CAROLINA": "NC", "NORTH DAKOTA": "ND", "OHIO": "OH", "OKLAHOMA": "OK",
    "OREGON": "OR", "PENNSYLVANIA": "PA", "RHODE ISLAND": "RI", "SOUTH CAROLINA": "SC",
    "SOUTH DAKOTA": "SD", "TENNESSEE": "TN", "TEXAS": "TX", "UTAH": "UT",
    "VERMONT": "VT", "VIRGINIA": "VA", "WASHINGTON": "WA", "WEST VIRGINIA": "WV",
    "WISCONSIN": "WI", "WYOMING": "WY",
}  # fmt: skip

_STATE_ZIP_RE = re.compile(r"(.+?)\s+(\d{5}(?:-\d{4})?)")


def normalize_street(value: str) -> str:
    for pattern, replacement in _STREET_REPLACEMENTS:
        value = re.sub(pattern, replacement, value, count=0 if replacement else 1, flags=re.I)
    return value.strip()


def parse_address(line: str) -> dict[str, str] | None:
    """Split "street, city, state zip" into its parts; state is mapped to a USPS code."""
    parts = [part.strip() for part in (line or "").split(",") if part.strip()]
    if not parts:
        return None
    street = normalize_street(parts[0])
    city = parts[1] if len(parts) > 1 else ""
    state, postal = "", ""
    if len(parts) >= 3:
        state_zip = ", ".join(parts[2:])
        match = _STATE_ZIP_RE.match(state_zip)
        if match:
            state, postal = match.group(1).strip(), match.group(2)
        else:
            state = state_zip.strip()
    code = STATE_CODES.get(state.upper()) or STATE_CODES.get(state.replace(".", "").upper())
    return {"street": street, "city": city, "state": code or state, "postal": postal}


def query_variants(line: str) -> list[dict[str, str]]:
    """Parameter shapes to try, highest-confidence first."""
    parsed = parse_address(line) or {}
    street = parsed.get("street") or line
    city, state, postal = parsed.get("city", ""), parsed.get("state", ""), parsed.get("postal", "")
    variants = []
    if street and postal:
        variants.append({"address1": street, "postalcode": postal})
    if street and city and state:
        variants.append({"address1": street, "city": city, "state": state})
        variants.append({"address1": street, "address2": f"{city}, {state}"})
    if street and city and state and postal:
        variants.append({"address1": street, "address2": f"{city}, {state} {postal}"})
    if line and postal:
        variants.append({"address": line, "postalcode": postal})
    if street and not variants:
        variants.append({"address1": street})
    for variant in variants:
        if "address1" in variant:
            variant.setdefault("address", variant["address1"])
    return variants


def _has_detail(record: dict) -> bool:
    return bool(
        record.get("assessment")
        or record.get("sale")
        or record.get("lastSale")
        or record.get("sales")
        or record.get("saleHistory")
        or record.get("owner")
    )


def _first_number(candidates: Iterable) -> float | None:
    for value in candidates:
        if value is None or isinstance(value, bool):
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return None


def _first_string(candidates: Iterable) -> str | None:
    for value in candidates:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _first_item(value) -> dict:
    return value[0] if isinstance(value, list) and value else {}


def parse_property_record(record: dict | None) -> PropertyValuation:
    """Map an ATTOM property record onto valuation fields."""
    if not record:
        return PropertyValuation()
    owner = record.get("owner") or {}
    owners = _first_item(owner.get("owners"))
    owner_name = _first_string(
        [
            owner.get("ownername"),
            owner.get("ownerName"),
            owner.get("ownername1"),
            owner.get("formattedOwnerName"),
            owners.get("ownerName"),
            " ".join(filter(None, [owner.get("owner1firstName"), owner.get("owner1lastName")])),
            record.get("ownername"),
        ]
    )

    assessment = record.get("assessment") or {}
    assessed = assessment.get("assessed") or {}
    market = assessment.get("market") or {}
    assessor_value = _first_number(
        [
            assessed.get("totalvalue"),
            assessed.get("totvalue"),
            assessed.get("improvementvalue"),
            assessed.get("landvalue"),
            market.get("totalvalue"),
            market.get("totvalue"),
            market.get("landvalue"),
        ]
    )

    sale = (
        record.get("sale")
        or record.get("lastSale")
        or _first_item(record.get("sales"))
        or _first_item(record.get("saleHistory"))
        or _first_item(record.get("salehistory"))
        or {}
    )
    sale_amount = sale.get("amount") if isinstance(sale.get("amount"), dict) else {}
    avm_amount = (record.get("avm") or {}).get("amount") or {}
    valuation_market = (record.get("valuation") or {}).get("market") or {}
    market_value = _first_number(
        [
            avm_amount.get("value"),
            avm_amount.get("prediction"),
            avm_amount.get("market"),
            valuation_market.get("mktTtlValue"),
        ]
    )
    return PropertyValuation(
        assessor_value=assessor_value,
        realtor_com_value=market_value,
        attom_avm_value=market_value,
        current_owner=owner_name,
        last_sale_date=_first_string(
            [sale.get("saledate"), sale.get("saleDate"), sale.get("recordingDate")]
        ),
        last_sale_price=_first_number(
            [sale_amount.get("saleamt"), sale.get("saleamt"), sale.get("price")]
        ),
    )


class AttomValuationProvider:
    """Resolves property valuation fields from the ATTOM property API."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str,
        cache: TTLCache[str, PropertyValuation],
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rsplit("/", 1)[0]
        self._cache = cache
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def fetch(self, address: str) -> PropertyValuation:
        """Valuation fields for ``address``.

        Raises:
            UpstreamError: No API key, no matching record, or nothing usable in it.
        """
        if not self._api_key:
            raise UpstreamError("ATTOM_API_KEY missing")
        key = " ".join(address.lower().split())
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        record = await self._lookup(address)
        valuation = parse_property_record(record)
        if valuation.is_empty():
            raise UpstreamError("Attom returned no valuation fields for this address.")
        self._cache.set(key, valuation)
        return valuation

    async def _lookup(self, address: str) -> dict:
        headers = {"apikey": self._api_key, "accept": "application/json"}
        fallback: dict | None = None
        last_error = "No Attom record found for this address."
        async with httpx.AsyncClient(
            timeout=self._timeout, headers=headers, transport=self._transport
        ) as client:
            for suffix in _ENDPOINT_SUFFIXES:
                url = f"{self._base_url}/{suffix}"
                for params in query_variants(address):
                    try:
                        response = await client.get(url, params=params)
                    except httpx.HTTPError as exc:
                        logger.warning("ATTOM request to %s failed: %s", suffix, exc)
                        last_error = str(exc) or last_error
                        continue
                    if response.status_code != httpx.codes.OK:
                        last_error = f"Endpoint {suffix} failed: {response.status_code}"
                        continue
                    try:
                        data = response.json()
                    except ValueError:
                        last_error = f"Endpoint {suffix} returned invalid JSON"
                        continue
                    record = _first_item(data.get("property")) if isinstance(data, dict) else {}
                    if not record:
                        continue
                    if _has_detail(record):
                        return record
                    fallback = fallback or record
        if fallback is not None:
            return fallback
        raise UpstreamError(last_error)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_provider: AttomValuationProvider | None = None


def init_valuation_provider(cfg: Settings) -> AttomValuationProvider:
    """Initialise the singleton (called once from app lifespan)."""
    global _provider  # noqa: PLW0603
    _provider = AttomValuationProvider(
        api_key=cfg.ATTOM_API_KEY,
        base_url=cfg.ATTOM_API_URL,
        cache=TTLCache(cfg.ATTOM_CACHE_TTL_SECONDS, cfg.ATTOM_CACHE_MAX_ENTRIES),
    )
    logger.info("Valuation provider initialised (configured=%s)", _provider.configured)
    return _provider


def get_valuation_provider() -> AttomValuationProvider:
    if _provider is None:
        raise RuntimeError("Valuation provider not initialised -- call init_valuation_provider() first")
    return _provider
