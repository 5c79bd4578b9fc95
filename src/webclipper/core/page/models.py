"""
Page-side data models.

Tabs, loaded page documents and the option sets handed to the extraction
engines that run inside a page context.
"""

from pydantic import BaseModel, Field


class Tab(BaseModel):
    """An open page the user can capture."""

    id: int = Field(..., description="Opaque tab handle")
    url: str = Field(..., description="Address of the page")
    title: str = Field(default="", description="Page title as displayed")


class PageDocument(BaseModel):
    """
    A page loaded into a page context.

    The HTML is the live document the extraction engines work on.
    """

    url: str = Field(..., description="Final address after redirects")
    title: str = Field(default="", description="Document title")
    html: str = Field(default="", description="Document markup")


class SnapshotOptions(BaseModel):
    """
    Options passed to the snapshot engine.

    Mirrors the option set a self-contained page archiver understands.
    Engines ignore options they cannot honour.
    """

    remove_hidden_elements: bool = Field(default=True, description="Drop elements hidden from view")
    remove_unused_styles: bool = Field(default=True, description="Drop unused CSS rules")
    remove_unused_fonts: bool = Field(default=True, description="Drop unused font faces")
    remove_frames: bool = Field(default=False, description="Drop iframes")
    block_videos: bool = Field(default=True, description="Drop video elements")
    block_scripts: bool = Field(default=True, description="Drop script elements")
    compress_html: bool = Field(default=True, description="Collapse insignificant whitespace")
    remove_alternative_fonts: bool = Field(default=True, description="Keep one font source")
    remove_alternative_medias: bool = Field(default=True, description="Keep one media source")
    remove_alternative_images: bool = Field(default=False, description="Keep one image source")
    group_duplicate_images: bool = Field(default=True, description="Deduplicate inlined images")
    filename_template: str = Field(
        default="{page-title} ({date-iso} {time-locale})",
        description="Archiver filename template",
    )


class MarkdownOptions(BaseModel):
    """Options passed to the markdown engine."""

    heading_style: str = Field(default="atx", pattern="^(atx|setext)$")
    code_block_style: str = Field(default="fenced", pattern="^(fenced|indented)$")
    em_delimiter: str = Field(default="*")
    bullet_list_marker: str = Field(default="-")
    hr: str = Field(default="---")
    include_links: bool = Field(default=True, description="Keep hyperlinks in the output")
    include_tables: bool = Field(default=True, description="Keep tables in the output")


class PageData(BaseModel):
    """Result of a snapshot: the serialised page."""

    content: str = Field(..., description="Self-contained HTML")
    title: str = Field(default="", description="Title detected by the engine")
