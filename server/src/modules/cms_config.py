import os
from dataclasses import dataclass
from functools import lru_cache


SUPPORTED_SLUG_LOCALES = ("tr", "en")


def _truthy(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    raw = str(value).strip().lower()
    return raw in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = str(os.getenv(name) or default).strip()
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


@dataclass(frozen=True)
class CmsSettings:
    default_page_size: int
    max_page_size: int
    slug_locale: str
    use_transactions: bool
    max_upload_mb: int

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@lru_cache
def get_cms_settings() -> CmsSettings:
    return CmsSettings(
        default_page_size=_int_env("CMS_DEFAULT_PAGE_SIZE", 10),
        max_page_size=_int_env("CMS_MAX_PAGE_SIZE", 100),
        slug_locale=str(os.getenv("CMS_SLUG_LOCALE") or "tr").strip().lower(),
        use_transactions=_truthy(os.getenv("CMS_USE_TRANSACTIONS"), default=False),
        max_upload_mb=_int_env("CMS_MAX_UPLOAD_MB", 10),
    )


@dataclass(frozen=True)
class CmsEnvValidation:
    errors: tuple[str, ...]
    warnings: tuple[str, ...]


def validate_cms_environment() -> CmsEnvValidation:
    cfg = get_cms_settings()
    errors: list[str] = []
    warnings: list[str] = []
    if cfg.slug_locale not in SUPPORTED_SLUG_LOCALES:
        errors.append(f"Unsupported CMS_SLUG_LOCALE: {cfg.slug_locale}")
    if cfg.default_page_size > cfg.max_page_size:
        errors.append("CMS_DEFAULT_PAGE_SIZE cannot exceed CMS_MAX_PAGE_SIZE.")
    if not os.getenv("MONGODB_URI"):
        warnings.append("MONGODB_URI is not set via environment. Application may rely on .env fallback.")
    if cfg.use_transactions and str(os.getenv("MONGODB_URI") or "").startswith("mongomock://"):
        warnings.append("CMS_USE_TRANSACTIONS is ignored with a mongomock:// URI.")
    if not os.getenv("CMS_ADMIN_TOKEN"):
        warnings.append("CMS_ADMIN_TOKEN is not set; write endpoints are open.")
    return CmsEnvValidation(errors=tuple(errors), warnings=tuple(warnings))
