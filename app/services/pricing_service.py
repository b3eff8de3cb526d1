"""Pricing resolver: wholesale/retail unit prices for a publisher website."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import requests
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Config, get_config
from app.core.exceptions import ExternalDependencyDegraded
from app.models import PublisherOffering, Website

logger = logging.getLogger(__name__)

GUEST_POST_OFFERING = "guest_post"


@dataclass(frozen=True)
class WebsitePrice:
    wholesale_price: int
    retail_price: int
    publisher_id: int | None = None
    offering_id: int | None = None

    @property
    def is_zero(self) -> bool:
        return self.wholesale_price <= 0 and self.retail_price <= 0


NO_PRICE = WebsitePrice(wholesale_price=0, retail_price=0)


class PricingResolver(Protocol):
    def get_website_price(
        self,
        website_id: int | None,
        domain: str,
        quantity: int = 1,
        client_type: str = "existing",
        urgency: str = "standard",
    ) -> WebsitePrice: ...


def normalize_domain(domain: str) -> str:
    """Lowercase a domain and drop scheme, path and a leading www."""
    value = (domain or "").strip().lower()
    for prefix in ("https://", "http://"):
        if value.startswith(prefix):
            value = value[len(prefix) :]
    value = value.split("/", 1)[0]
    if value.startswith("www."):
        value = value[4:]
    return value


def find_website(db: Session, domain: str) -> Website | None:
    """Case-insensitive website lookup tolerant of a leading www."""
    bare = normalize_domain(domain)
    if not bare:
        return None
    return (
        db.query(Website)
        .filter(func.lower(Website.domain).in_([bare, f"www.{bare}"]))
        .order_by(Website.id)
        .first()
    )


class CatalogPricingResolver:
    """Resolve prices from the local publisher offering catalog.

    The website's pricing strategy picks the offering: a manual override wins,
    then a custom offering, otherwise the cheapest (or most expensive, for
    ``max_price``) active guest post offering. Quantity, client type and urgency
    only matter to the remote catalog; locally every unit is priced the same.
    """

    def __init__(self, db: Session, service_fee_cents: int) -> None:
        self.db = db
        self.service_fee_cents = service_fee_cents

    def get_website_price(
        self,
        website_id: int | None,
        domain: str,
        quantity: int = 1,
        client_type: str = "existing",
        urgency: str = "standard",
    ) -> WebsitePrice:
        try:
            website = self.db.get(Website, website_id) if website_id else find_website(self.db, domain)
            if website is None:
                return NO_PRICE
            offering = self._select_offering(website)
        except SQLAlchemyError as exc:
            raise ExternalDependencyDegraded(f"Offering catalog lookup failed for {domain}") from exc

        if offering is None or not offering.base_price:
            return NO_PRICE
        return WebsitePrice(
            wholesale_price=offering.base_price,
            retail_price=offering.base_price + self.service_fee_cents,
            publisher_id=offering.publisher_id,
            offering_id=offering.id,
        )

    def _usable(self, offering: PublisherOffering | None) -> bool:
        return (
            offering is not None
            and offering.is_active
            and offering.offering_type == GUEST_POST_OFFERING
            and (offering.base_price or 0) > 0
        )

    def _select_offering(self, website: Website) -> PublisherOffering | None:
        if website.price_override_offering_id:
            override = self.db.get(PublisherOffering, website.price_override_offering_id)
            return override if self._usable(override) else None

        if website.pricing_strategy == "custom" and website.custom_offering_id:
            custom = self.db.get(PublisherOffering, website.custom_offering_id)
            return custom if self._usable(custom) else None

        offerings = [
            offering
            for offering in (
                self.db.query(PublisherOffering)
                .filter(
                    PublisherOffering.website_id == website.id,
                    PublisherOffering.current_availability == "available",
                )
                .order_by(PublisherOffering.id)
                .all()
            )
            if self._usable(offering)
        ]
        if not offerings:
            return None
        if website.pricing_strategy == "max_price":
            return max(offerings, key=lambda offering: offering.base_price)
        return min(offerings, key=lambda offering: offering.base_price)


class HttpPricingResolver:
    """Resolve prices through the remote offering/price-rule catalog."""

    def __init__(self, base_url: str, timeout_seconds: int) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def get_website_price(
        self,
        website_id: int | None,
        domain: str,
        quantity: int = 1,
        client_type: str = "existing",
        urgency: str = "standard",
    ) -> WebsitePrice:
        payload = {
            "websiteId": website_id,
            "domain": normalize_domain(domain),
            "quantity": quantity,
            "clientType": client_type,
            "urgency": urgency,
        }
        try:
            response = requests.post(
                f"{self.base_url}/website-price",
                json=payload,
                timeout=(2, self.timeout_seconds),
            )
            response.raise_for_status()
            body = response.json()
            return WebsitePrice(
                wholesale_price=int(body.get("wholesalePrice") or 0),
                retail_price=int(body.get("retailPrice") or 0),
                publisher_id=body.get("publisherId"),
                offering_id=body.get("offeringId"),
            )
        except (requests.exceptions.RequestException, ValueError, TypeError) as exc:
            logger.warning(
                "pricing.remote.failed",
                extra={"event": "pricing.remote.failed", "error": str(exc)},
            )
            raise ExternalDependencyDegraded(f"Pricing service unavailable for {domain}") from exc


def price_with_fallback(
    resolver: PricingResolver,
    website: Website | None,
    domain: str,
    service_fee_cents: int,
) -> tuple[WebsitePrice | None, str]:
    """Resolve a unit price, falling back to the website's listed guest post cost.

    Returns the price (None when nothing is known) and the source it came from.
    """
    try:
        price = resolver.get_website_price(website.id if website is not None else None, domain, quantity=1)
    except ExternalDependencyDegraded as exc:
        logger.warning(
            "pricing.resolver.degraded",
            extra={"event": "pricing.resolver.degraded", "error": str(exc)},
        )
        price = None

    if price is not None and not price.is_zero:
        return price, "resolver"
    if website is not None and website.guest_post_cost:
        wholesale = website.guest_post_cost
        return WebsitePrice(wholesale_price=wholesale, retail_price=wholesale + service_fee_cents), "fallback"
    return None, "unpriced"


def get_pricing_resolver(db: Session, config: Config | None = None) -> PricingResolver:
    cfg = config or get_config()
    if cfg.PRICING_BACKEND == "http" and cfg.PRICING_SERVICE_URL:
        return HttpPricingResolver(cfg.PRICING_SERVICE_URL, cfg.EXTERNAL_TIMEOUT_SECONDS)
    return CatalogPricingResolver(db, cfg.SERVICE_FEE_CENTS)
