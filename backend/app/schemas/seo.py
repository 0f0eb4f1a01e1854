"""SEO and social sharing metadata schemas."""

from pydantic import BaseModel
from typing import Optional


class SEOData(BaseModel):
    """Page-level input for meta tag generation."""
    title: str = ""
    description: str = ""
    image: Optional[str] = None
    url: Optional[str] = None
    type: str = "website"
    noindex: bool = False


class OpenGraphMeta(BaseModel):
    title: str
    description: str
    url: str
    image: str
    type: str
    site_name: str


class TwitterMeta(BaseModel):
    card: str
    title: str
    description: str
    image: str


class LineMeta(BaseModel):
    image: str
    description: str


class SEOMeta(BaseModel):
    """Full set of meta tags for a page."""
    title: str
    description: str
    canonical: str
    og: OpenGraphMeta
    twitter: TwitterMeta
    line: LineMeta
    robots: str
