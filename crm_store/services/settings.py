"""
Business profile and settings services.

Invariants:
    - A number format is never saved unless it validates; on rejection the
      previous format stays in place
    - Label updates merge into the current labels; unknown keys are rejected
    - Every settings change refreshes settings.updated_at
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ..errors import NotFoundError, ValidationError
from ..models.database import (
    Address,
    BankDetails,
    Business,
    DatabaseRecord,
    DocumentLabels,
    Settings,
    local_now,
)
from ..numbering import preset_for_format, preview, require_valid, validate
from ..storage.store import PersistentStore
from .schemas import BusinessUpdate, SettingsUpdate, TemplateCheck

logger = logging.getLogger(__name__)

NUMBER_FORMAT_FIELDS = ("offer_number_format", "invoice_number_format")

# Required when the business profile is created for the first time
REQUIRED_BUSINESS_FIELDS = ("name", "address", "phone", "email")


def _label_field_names() -> dict[str, str]:
    names: dict[str, str] = {}
    for name, field in DocumentLabels.model_fields.items():
        names[name] = name
        if field.alias:
            names[field.alias] = name
    return names


class BusinessService:
    """Read and update the user's business profile."""

    def __init__(self, store: PersistentStore) -> None:
        self.store = store

    def get(self) -> Business:
        business = self.store.get().business
        if business is None:
            raise NotFoundError(
                "Business profile has not been set up", resource_type="business"
            )
        return business

    def get_or_none(self) -> Business | None:
        return self.store.get().business

    async def update(self, data: BusinessUpdate, now: datetime | None = None) -> Business:
        """Create or partially update the business profile.

        Nested address and bank details are merged field by field.

        Raises:
            ValidationError: If the profile does not exist yet and a
                required field is missing
        """
        changes = data.set_fields()
        address = changes.pop("address", None)
        bank_details = changes.pop("bank_details", None)
        now = now or local_now()

        def apply(db: DatabaseRecord) -> Business:
            if db.business is None:
                missing = [
                    name for name in REQUIRED_BUSINESS_FIELDS if getattr(data, name) in (None, "")
                ]
                if missing:
                    raise ValidationError(
                        "Business name, address, phone and email are required",
                        field_errors={name: ["required"] for name in missing},
                    )
                db.business = Business(name=data.name, updated_at=now)

            business = db.business
            for name, value in changes.items():
                setattr(business, name, value)
            if address is not None:
                business.address = business.address.model_copy(
                    update=address.set_fields(exclude_none=True)
                )
            if bank_details is not None:
                current = business.bank_details or BankDetails()
                business.bank_details = current.model_copy(
                    update=bank_details.set_fields(exclude_none=True)
                )
            business.updated_at = now
            return business

        business = await self.store.mutate(apply)
        logger.info("Updated business profile")
        return business


class SettingsService:
    """Read and update application settings."""

    def __init__(self, store: PersistentStore) -> None:
        self.store = store

    def get(self) -> Settings:
        return self.store.get().settings

    async def update(self, data: SettingsUpdate, now: datetime | None = None) -> Settings:
        """Apply a partial settings update.

        Raises:
            InvalidTemplateError: If a number format does not validate
            ValidationError: If a label key is unknown
        """
        changes = data.set_fields()
        labels = changes.pop("labels", None)

        for name in NUMBER_FORMAT_FIELDS:
            if changes.get(name) is not None:
                require_valid(changes[name])

        label_changes: dict[str, Any] = {}
        if labels:
            known = _label_field_names()
            unknown = sorted(key for key in labels if key not in known)
            if unknown:
                raise ValidationError(
                    f"Unknown label keys: {', '.join(unknown)}",
                    field_errors={f"labels.{key}": ["unknown label"] for key in unknown},
                )
            label_changes = {known[key]: value for key, value in labels.items()}

        def apply(db: DatabaseRecord) -> Settings:
            settings = db.settings
            for name, value in changes.items():
                if value is not None:
                    setattr(settings, name, value)
            if label_changes:
                settings.labels = settings.labels.model_copy(update=label_changes)
            settings.updated_at = now or local_now()
            return settings

        settings = await self.store.mutate(apply)
        logger.info(f"Updated settings: {', '.join(sorted(changes)) or 'labels'}")
        return settings

    def check_number_format(self, check: TemplateCheck) -> dict[str, Any]:
        """Validate a number format and render an example number."""
        result = validate(check.template)
        preset = preset_for_format(check.template)
        return {
            **result.to_dict(),
            "preview": preview(check.template, check.prefix, check.global_counter, check.year_counter),
            "preset": preset.id if preset else None,
        }
