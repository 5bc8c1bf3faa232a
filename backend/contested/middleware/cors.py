from __future__ import annotations


def build_allowed_origins(*, frontend_base_url: str, frontend_urls: str | None) -> list[str]:
    allowed: set[str] = {
        "http://localhost:3000",
        "http://localhost:5000",
        "http://localhost:5173",
    }

    if frontend_base_url:
        allowed.add(frontend_base_url.rstrip("/"))

    for origin in [s.strip() for s in str(frontend_urls or "").split(",") if s.strip()]:
        allowed.add(origin.rstrip("/"))

    return sorted(allowed)


def build_allowed_origin_regex() -> str:
    """
    Preview deployments (*.replit.app, *.vercel.app) and any subdomain of
    contested.app, matched on the registrable domain so lookalikes such as
    evilcontested.app are rejected.
    """
    return r"^https://([a-z0-9-]+\.)*(contested\.app|replit\.app|vercel\.app)$"
