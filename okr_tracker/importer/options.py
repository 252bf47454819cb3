import json
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError
from sqlmodel import SQLModel, Field

from okr_tracker.models import DuplicateStrategy

# Form payloads arrive camelCased from the browser
_FORM_KEYS = {
    "tenantId": "tenant_id",
    "userId": "user_id",
    "userEmail": "user_email",
    "fiscalYearStartMonth": "fiscal_year_start_month",
    "duplicateStrategy": "duplicate_strategy",
    "importCheckIns": "import_check_ins",
    "importTeams": "import_teams",
}


class InvalidImportOptions(ValueError):
    """Import options failed validation."""


class ImportOptions(SQLModel):
    """Per-run settings for an archive import."""
    tenant_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    user_email: Optional[str] = None
    fiscal_year_start_month: int = Field(default=1, ge=1, le=12)
    duplicate_strategy: DuplicateStrategy = DuplicateStrategy.SKIP
    import_check_ins: bool = True
    import_teams: bool = True

    @classmethod
    def from_form(cls, raw: Union[str, Mapping[str, Any], None] = None, **overrides) -> "ImportOptions":
        """
        Build options from a loosely-typed form field (JSON text or dict,
        camelCase or snake_case keys). Keyword overrides win, which is how the
        caller injects the tenant and user it resolved from the session.
        """
        if isinstance(raw, str):
            try:
                raw = json.loads(raw) if raw.strip() else {}
            except json.JSONDecodeError as exc:
                raise InvalidImportOptions(f"Options are not valid JSON: {exc.msg}") from exc
        if raw is not None and not isinstance(raw, Mapping):
            raise InvalidImportOptions("Options must be a JSON object")

        values = {_FORM_KEYS.get(key, key): value for key, value in (raw or {}).items()}
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            raise InvalidImportOptions(f"Invalid import options: {problems}") from exc
