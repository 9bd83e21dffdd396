"""In-memory citation records produced by the EFetch decoder.

The classes mirror the containment of a ``PubmedArticle`` element: a record
owns one :class:`MedlineCitation`, which owns the article, keyword, MeSH and
correction sequences.  Every child has a single owner and no back-references.
Records are populated incrementally while the decoder walks one
``PubmedArticle`` and are never mutated by the decoder after the closing tag
has been seen.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List


class IssnType(str, Enum):
    """Kind of an ISSN attached to a journal."""

    PRINT = "Print"
    ELECTRONIC = "Electronic"
    LINKING = "Linking"

    @classmethod
    def from_attribute(cls, value: str | None) -> "IssnType":
        """Map an ``IssnType`` attribute to a kind.

        Only an exact (case-insensitive) ``print`` is treated as print; any
        other value, including a missing attribute, is electronic.
        """

        if value is not None and value.lower() == "print":
            return cls.PRINT
        return cls.ELECTRONIC


class YesNo(str, Enum):
    """Values of the ``MajorTopicYN`` attribute."""

    YES = "Y"
    NO = "N"

    @classmethod
    def from_attribute(cls, value: str | None) -> "YesNo | None":
        """Return the flag for ``value`` or ``None`` when unset or unknown."""

        if value is None:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


@dataclass
class JournalIssn:
    issn_type: IssnType
    issn: str | None = None


@dataclass
class PublicationDate:
    """Publication date reduced to a four character year."""

    year: str | None = None


@dataclass
class JournalIssue:
    volume: str | None = None
    issue: str | None = None
    pub_date: PublicationDate | None = None


@dataclass
class Journal:
    title: str | None = None
    iso_abbreviation: str | None = None
    issns: List[JournalIssn] = field(default_factory=list)
    journal_issue: JournalIssue | None = None


@dataclass
class Pagination:
    medline_pgns: List[str] = field(default_factory=list)


@dataclass
class Author:
    last_name: str | None = None
    fore_name: str | None = None
    initials: str | None = None
    affiliation: str | None = None


@dataclass
class Grant:
    grant_id: str | None = None
    acronym: str | None = None
    agency: str | None = None
    country: str | None = None


@dataclass
class Article:
    """The ``Article`` block of a citation."""

    title: str | None = None
    journal: Journal | None = None
    pagination: Pagination | None = None
    elocation_id: str | None = None
    authors: List[Author] = field(default_factory=list)
    grants: List[Grant] = field(default_factory=list)


@dataclass
class Keyword:
    keyword: str | None = None
    major_topic: YesNo | None = None


@dataclass
class MeshDescriptor:
    name: str | None = None
    major_topic: YesNo | None = None


@dataclass
class MeshQualifier:
    name: str | None = None
    major_topic: YesNo | None = None


@dataclass
class MeshHeading:
    descriptor: MeshDescriptor = field(default_factory=MeshDescriptor)
    qualifiers: List[MeshQualifier] = field(default_factory=list)


@dataclass
class Correction:
    """Reference from ``CommentsCorrections`` to another PubMed record.

    ``pmid`` is kept verbatim; it identifies the referenced record, not the
    citation that owns the correction.
    """

    pmid: str | None = None
    ref_type: str | None = None
    ref_source: str | None = None


@dataclass
class MedlineCitation:
    pmid: int | None = None
    article: Article | None = None
    keywords: List[Keyword] = field(default_factory=list)
    mesh_headings: List[MeshHeading] = field(default_factory=list)
    corrections: List[Correction] = field(default_factory=list)


@dataclass
class PubMedData:
    """Identifiers from the ``PubmedData`` block.

    Only the PMC identifier is attached; ``pubmed``, ``pii`` and ``doi``
    article ids are recognised by the decoder but not stored.
    """

    pmc: str | None = None


def _dict_factory(items: List[tuple[str, Any]]) -> Dict[str, Any]:
    return {
        key: value.value if isinstance(value, Enum) else value for key, value in items
    }


@dataclass
class PubMedArticle:
    """One decoded ``PubmedArticle`` record."""

    medline_citation: MedlineCitation | None = None
    pubmed_data: PubMedData | None = None

    @property
    def pmid(self) -> int | None:
        """Primary PubMed identifier of the record."""

        if self.medline_citation is None:
            return None
        return self.medline_citation.pmid

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON serialisable representation of the record."""

        return asdict(self, dict_factory=_dict_factory)


__all__ = [
    "Article",
    "Author",
    "Correction",
    "Grant",
    "IssnType",
    "Journal",
    "JournalIssn",
    "JournalIssue",
    "Keyword",
    "MedlineCitation",
    "MeshDescriptor",
    "MeshHeading",
    "MeshQualifier",
    "Pagination",
    "PublicationDate",
    "PubMedArticle",
    "PubMedData",
    "YesNo",
]
