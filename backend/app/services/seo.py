"""
SEO, social sharing and sitemap helpers.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
from xml.sax.saxutils import escape

from app.core.config import settings
from app.schemas.seo import LineMeta, OpenGraphMeta, SEOData, SEOMeta, TwitterMeta

TRACKING_PARAMS = {"share", "utm_source", "utm_medium", "utm_campaign"}

# (path, changefreq, priority)
SITEMAP_ROUTES: List[Tuple[str, str, str]] = [
    ("", "daily", "1.0"),
    ("/about", "monthly", "0.8"),
    ("/sources", "monthly", "0.7"),
    ("/legal", "monthly", "0.5"),
]


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def get_canonical_url(url: str) -> str:
    """Drop share and tracking parameters from a page URL."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in TRACKING_PARAMS]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def generate_seo(data: SEOData, url: str) -> SEOMeta:
    """Build the title, canonical, Open Graph, Twitter, LINE and robots tags for a page."""
    canonical = get_canonical_url(url)
    title = data.title or settings.SITE_NAME
    description = data.description or settings.SITE_DESCRIPTION
    image = data.image or f"{_origin(url)}/logo.png"
    page_url = data.url or canonical

    return SEOMeta(
        title=title,
        description=description,
        canonical=canonical,
        og=OpenGraphMeta(
            title=title,
            description=description,
            url=page_url,
            image=image,
            type=data.type or "website",
            site_name=settings.SITE_NAME,
        ),
        twitter=TwitterMeta(
            card="summary_large_image",
            title=title,
            description=description,
            image=image,
        ),
        line=LineMeta(image=image, description=description),
        robots="noindex, nofollow" if data.noindex else "index, follow",
    )


def build_share_metadata(address: str, overall: float, url: Optional[str] = None) -> SEOMeta:
    """Meta tags for a shared score page."""
    page_url = url or f"{settings.SITE_URL}/?{urlencode({'address': address})}"
    # Halves round up: 72.5 shows as 73
    score = int(Decimal(str(overall)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return generate_seo(
        SEOData(
            title=f"{address} - Livability Score: {score}/100",
            description=(
                f"{address} scores {score}/100 for livability on {settings.SITE_NAME}: "
                "noise, air quality, safety, convenience and zoning risk."
            ),
            type="article",
        ),
        page_url,
    )


def render_sitemap(base_url: str) -> str:
    """XML sitemap of the static pages."""
    base_url = escape(base_url.rstrip("/"))
    entries = [
        f"  <url>\n"
        f"    <loc>{base_url}{path}</loc>\n"
        f"    <changefreq>{changefreq}</changefreq>\n"
        f"    <priority>{priority}</priority>\n"
        f"  </url>"
        for path, changefreq, priority in SITEMAP_ROUTES
    ]
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        + "\n".join(entries)
        + "\n</urlset>"
    )
