from supabase import create_client, Client
from backend.config import Settings


def make_service_supabase(settings: Settings) -> Client:
    """
    Client service-role (bypass RLS): webhook, lecture des commandes, panier côté serveur.
    """
    if not settings.supabase_service_key:
        raise RuntimeError("SUPABASE_SERVICE_KEY manquant pour make_service_supabase()")
    return create_client(settings.supabase_url, settings.supabase_service_key)


def make_anon_supabase(settings: Settings) -> Client:
    """
    Client 'anon': utilisé uniquement pour résoudre un access token (auth.get_user).
    """
    if not settings.supabase_anon_key:
        raise RuntimeError("SUPABASE_ANON_KEY manquant pour make_anon_supabase()")
    return create_client(settings.supabase_url, settings.supabase_anon_key)


def is_unique_violation(exc: Exception) -> bool:
    """True si l'erreur PostgREST correspond à une violation d'unicité (SQLSTATE 23505)."""
    code = getattr(exc, "code", None)
    if code == "23505":
        return True
    return "23505" in str(exc) or "duplicate key" in str(exc).lower()


def is_invalid_reference(exc: Exception) -> bool:
    """True pour un uuid mal formé (22P02) ou une clé étrangère absente (23503)."""
    return getattr(exc, "code", None) in ("22P02", "23503")
