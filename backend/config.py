# backend.config
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import os
from dotenv import load_dotenv

"""
Configuration centrale du backend.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, Resend), CORS/hosts
- Construit un unique objet Settings (immuable) passé explicitement à l'app
"""

BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"


def _clean_env(v: Optional[str]) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")


def _split_env(v: Optional[str]) -> List[str]:
    return [x.strip() for x in (v or "").split(",") if x.strip()]


def _normalize_url(url: str) -> str:
    # SUPABASE_URL / SITE_URL peuvent arriver sans schéma ou avec un / final
    if url and not url.startswith("http"):
        url = "https://" + url
    return url.rstrip("/")


@dataclass(frozen=True)
class Settings:
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_key: str = ""

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    site_url: str = "http://localhost:8080"
    checkout_success_path: str = "/payment-success"
    checkout_cancel_path: str = "/"
    default_currency: str = "usd"

    resend_api_key: str = ""
    order_from_email: str = ""
    order_email_subject: str = "Your Logic Labs order confirmation"

    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    allowed_hosts: List[str] = field(default_factory=lambda: ["localhost", "127.0.0.1"])
    cookie_secure: bool = False
    rate_limit_redis_url: str = "redis://127.0.0.1:6379/0"

    @property
    def success_url(self) -> str:
        """URL de retour Stripe; {CHECKOUT_SESSION_ID} est substitué par Stripe."""
        sep = "&" if "?" in self.checkout_success_path else "?"
        return f"{self.site_url}{self.checkout_success_path}{sep}session_id={{CHECKOUT_SESSION_ID}}"

    @property
    def cancel_url(self) -> str:
        return f"{self.site_url}{self.checkout_cancel_path}"

    @property
    def email_enabled(self) -> bool:
        return bool(self.resend_api_key and self.order_from_email)


def load_settings(env_path: Optional[Path] = ENV_PATH) -> Settings:
    """
    Lit l'environnement (après chargement .env) et retourne un Settings.
    - Appelée une seule fois au démarrage (create_app)
    - Les tests construisent directement Settings(...) sans passer par l'environnement
    """
    if env_path is not None:
        load_dotenv(dotenv_path=env_path, override=False)

    return Settings(
        supabase_url=_normalize_url(_clean_env(os.getenv("SUPABASE_URL"))),
        supabase_anon_key=_clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY")),
        supabase_service_key=_clean_env(os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY")),
        stripe_secret_key=_clean_env(os.getenv("STRIPE_SECRET_KEY")),
        stripe_webhook_secret=_clean_env(os.getenv("STRIPE_WEBHOOK_SECRET")),
        site_url=_normalize_url(_clean_env(os.getenv("SITE_URL")) or "http://localhost:8080"),
        checkout_success_path=os.getenv("CHECKOUT_SUCCESS_PATH", "/payment-success"),
        checkout_cancel_path=os.getenv("CHECKOUT_CANCEL_PATH", "/"),
        default_currency=_clean_env(os.getenv("DEFAULT_CURRENCY") or "usd").lower(),
        resend_api_key=_clean_env(os.getenv("RESEND_API_KEY")),
        order_from_email=_clean_env(os.getenv("ORDER_FROM_EMAIL")),
        order_email_subject=os.getenv("ORDER_EMAIL_SUBJECT", "Your Logic Labs order confirmation"),
        cors_origins=_split_env(os.getenv("CORS_ORIGINS", "*")),
        allowed_hosts=_split_env(os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1")),
        cookie_secure=(os.getenv("COOKIE_SECURE", "false").lower() == "true"),
        rate_limit_redis_url=os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0"),
    )
