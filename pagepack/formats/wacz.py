"""Pydantic models for the WACZ container metadata (.wacz)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

SOFTWARE = "pagepack 0.1.0"

WACZ_VERSION = "1.1.1"
SUPPORTED_WACZ_VERSIONS = ("1.0.0", "1.1.1")
PAGES_FORMAT = "json-pages-1.0"

WARC_PATH = "archive/data.warc"
PAGES_PATH = "pages/pages.jsonl"
DATAPACKAGE_PATH = "datapackage.json"
DATAPACKAGE_DIGEST_PATH = "datapackage-digest.json"
RAW_PREFIX = "raw/"


class PagesHeader(BaseModel):
    """First line of pages.jsonl."""

    format: str = PAGES_FORMAT
    id: str = "pages"
    title: str = "All Pages"


class PageLine(BaseModel):
    id: str
    url: str
    ts: str
    title: str = ""


class Resource(BaseModel):
    name: str
    path: str
    hash: str
    bytes: int


class DataPackage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    profile: str = "data-package"
    wacz_version: str = WACZ_VERSION
    title: str = ""
    created: str
    software: str = SOFTWARE
    main_page_url: str | None = Field(default=None, alias="mainPageURL")
    main_page_date: str | None = Field(default=None, alias="mainPageDate")
    resources: list[Resource] = Field(default_factory=list)
    extras: dict[str, Any] | None = None


class DataPackageDigest(BaseModel):
    path: str = DATAPACKAGE_PATH
    hash: str
