"""
Built-in accessibility rules.
"""
from app.features.accessibility.services.rules.base import Finding, Rule, finding_for
from app.features.accessibility.services.rules.headings import (
    HeadingsSequenceRule,
    HeadingsStartAtH2Rule,
    ParagraphsForHeadingsRule,
)
from app.features.accessibility.services.rules.images import ImgAltFilenameRule, ImgAltLengthRule, ImgAltRule
from app.features.accessibility.services.rules.links import AdjacentLinksRule
from app.features.accessibility.services.rules.lists import ListStructureRule
from app.features.accessibility.services.rules.tables import TableCaptionRule, TableHeaderRule, TableHeaderScopeRule

BUILTIN_RULES = (
    ImgAltRule,
    ImgAltFilenameRule,
    ImgAltLengthRule,
    HeadingsSequenceRule,
    HeadingsStartAtH2Rule,
    ParagraphsForHeadingsRule,
    ListStructureRule,
    TableHeaderRule,
    TableHeaderScopeRule,
    TableCaptionRule,
    AdjacentLinksRule,
)

__all__ = [
    "Finding",
    "Rule",
    "finding_for",
    "BUILTIN_RULES",
    "ImgAltRule",
    "ImgAltFilenameRule",
    "ImgAltLengthRule",
    "HeadingsSequenceRule",
    "HeadingsStartAtH2Rule",
    "ParagraphsForHeadingsRule",
    "ListStructureRule",
    "TableHeaderRule",
    "TableHeaderScopeRule",
    "TableCaptionRule",
    "AdjacentLinksRule",
]
