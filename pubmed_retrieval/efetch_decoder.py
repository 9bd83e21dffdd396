"""Single-pass decoder for EFetch ``PubmedArticleSet`` documents.

The decoder receives parse events through the
:class:`xml.etree.ElementTree.XMLParser` target protocol (``start``, ``data``,
``end`` and ``close``) and turns them into :class:`~pubmed_retrieval.model.PubMedArticle`
records without ever building an element tree.  Bytes can therefore be fed as
they arrive from the network and records are released as soon as their
``PubmedArticle`` element closes.

Algorithm Notes
---------------
1. Element names are compared case-insensitively.
2. Structurally significant elements (citation, article, journal, author,
   MeSH heading, grant, correction, ...) are pushed on a region stack together
   with their depth when they open and popped when they close.  A region is
   only entered when its element is a direct child of the expected parent
   region, so e.g. an ``ArticleIdList`` nested in a reference list is ignored.
3. Leaf elements are looked up by ``(innermost region, tag)``.  The same tag
   name therefore lands in different fields depending on where it occurs:
   ``PMID`` under ``MedlineCitation`` is the record identifier while ``PMID``
   under ``CommentsCorrections`` is the referenced record.
4. Opening a leaf binds the destination (the newest author, heading, grant,
   ...) and starts a fresh text buffer.  Closing the leaf hands the buffered
   text to that destination.
5. Closing ``PubmedArticle`` seals the record.  Wrappers without a
   ``MedlineCitation`` produce no record.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import partial
import logging
import re
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Tuple
import xml.etree.ElementTree as ET

from .errors import MalformedDocumentError
from .model import (
    Article,
    Author,
    Correction,
    Grant,
    IssnType,
    Journal,
    JournalIssn,
    JournalIssue,
    Keyword,
    MedlineCitation,
    MeshDescriptor,
    MeshHeading,
    MeshQualifier,
    Pagination,
    PublicationDate,
    PubMedArticle,
    PubMedData,
    YesNo,
)

LOGGER = logging.getLogger(__name__)

# Optional sign followed by digits; no whitespace or digit separators.
_PMID_PATTERN = re.compile(r"[+-]?\d+")

Assign = Callable[[str], None]


class _Region(Enum):
    RECORD = "pubmedarticle"
    CITATION = "medlinecitation"
    ARTICLE = "article"
    JOURNAL = "journal"
    JOURNAL_ISSUE = "journalissue"
    PUB_DATE = "pubdate"
    PAGINATION = "pagination"
    AUTHOR_LIST = "authorlist"
    AUTHOR = "author"
    AFFILIATION_INFO = "affiliationinfo"
    MEDLINE_JOURNAL_INFO = "medlinejournalinfo"
    KEYWORD_LIST = "keywordlist"
    MESH_HEADING_LIST = "meshheadinglist"
    MESH_HEADING = "meshheading"
    GRANT_LIST = "grantlist"
    GRANT = "grant"
    CORRECTIONS_LIST = "commentscorrectionslist"
    CORRECTION = "commentscorrections"
    PUBMED_DATA = "pubmeddata"
    ARTICLE_ID_LIST = "articleidlist"


_PARENT_REGION: Dict[_Region, _Region | None] = {
    _Region.RECORD: None,
    _Region.CITATION: _Region.RECORD,
    _Region.ARTICLE: _Region.CITATION,
    _Region.JOURNAL: _Region.ARTICLE,
    _Region.JOURNAL_ISSUE: _Region.JOURNAL,
    _Region.PUB_DATE: _Region.JOURNAL_ISSUE,
    _Region.PAGINATION: _Region.ARTICLE,
    _Region.AUTHOR_LIST: _Region.ARTICLE,
    _Region.AUTHOR: _Region.AUTHOR_LIST,
    _Region.AFFILIATION_INFO: _Region.AUTHOR,
    _Region.GRANT_LIST: _Region.ARTICLE,
    _Region.GRANT: _Region.GRANT_LIST,
    _Region.MEDLINE_JOURNAL_INFO: _Region.CITATION,
    _Region.KEYWORD_LIST: _Region.CITATION,
    _Region.MESH_HEADING_LIST: _Region.CITATION,
    _Region.MESH_HEADING: _Region.MESH_HEADING_LIST,
    _Region.CORRECTIONS_LIST: _Region.CITATION,
    _Region.CORRECTION: _Region.CORRECTIONS_LIST,
    _Region.PUBMED_DATA: _Region.RECORD,
    _Region.ARTICLE_ID_LIST: _Region.PUBMED_DATA,
}

_REGION_TRANSITIONS: Dict[Tuple[_Region | None, str], _Region] = {
    (parent, region.value): region for region, parent in _PARENT_REGION.items()
}

# Leaves assigned verbatim to an attribute of the object held by a cursor.
_FIELD_LEAVES: Dict[Tuple[_Region, str], Tuple[str, str]] = {
    (_Region.ARTICLE, "articletitle"): ("_article", "title"),
    (_Region.ARTICLE, "elocationid"): ("_article", "elocation_id"),
    (_Region.JOURNAL, "title"): ("_journal", "title"),
    (_Region.JOURNAL, "isoabbreviation"): ("_journal", "iso_abbreviation"),
    (_Region.JOURNAL_ISSUE, "volume"): ("_journal_issue", "volume"),
    (_Region.JOURNAL_ISSUE, "issue"): ("_journal_issue", "issue"),
    (_Region.PUB_DATE, "year"): ("_pub_date", "year"),
    (_Region.AUTHOR, "lastname"): ("_author", "last_name"),
    (_Region.AUTHOR, "forename"): ("_author", "fore_name"),
    (_Region.AUTHOR, "initials"): ("_author", "initials"),
    (_Region.AUTHOR, "affiliation"): ("_author", "affiliation"),
    (_Region.AFFILIATION_INFO, "affiliation"): ("_author", "affiliation"),
    (_Region.GRANT, "grantid"): ("_grant", "grant_id"),
    (_Region.GRANT, "acronym"): ("_grant", "acronym"),
    (_Region.GRANT, "agency"): ("_grant", "agency"),
    (_Region.GRANT, "country"): ("_grant", "country"),
    (_Region.CORRECTION, "refsource"): ("_correction", "ref_source"),
    (_Region.CORRECTION, "pmid"): ("_correction", "pmid"),
}

# Leaves whose opening tag creates or classifies something first.
_SPECIAL_LEAVES: Dict[Tuple[_Region, str], str] = {
    (_Region.CITATION, "pmid"): "_open_pmid",
    (_Region.JOURNAL, "issn"): "_open_issn",
    (_Region.MEDLINE_JOURNAL_INFO, "issnlinking"): "_open_issn_linking",
    (_Region.PUB_DATE, "medlinedate"): "_open_medline_date",
    (_Region.PAGINATION, "medlinepgn"): "_open_medline_pgn",
    (_Region.KEYWORD_LIST, "keyword"): "_open_keyword",
    (_Region.MESH_HEADING, "descriptorname"): "_open_descriptor_name",
    (_Region.MESH_HEADING, "qualifiername"): "_open_qualifier_name",
    (_Region.ARTICLE_ID_LIST, "articleid"): "_open_article_id",
}

_ARTICLE_ID_TYPES = frozenset({"pubmed", "pii", "doi", "pmc"})


@dataclass
class _Capture:
    depth: int
    assign: Assign


def _set_medline_year(pub_date: PublicationDate, text: str) -> None:
    # e.g. "2013 May-Jun"
    pub_date.year = text[:4]


class EFetchDecoder:
    """Parser target turning ``PubmedArticleSet`` events into records.

    One instance decodes exactly one document.  Use it with
    :class:`xml.etree.ElementTree.XMLParser` (``XMLParser(target=decoder)``)
    or through :func:`iter_articles`.
    """

    def __init__(self) -> None:
        self._sealed: List[PubMedArticle] = []
        self._regions: List[Tuple[_Region, int]] = []
        self._depth = 0
        self._buffer: List[str] = []
        self._capture: _Capture | None = None
        self._record: PubMedArticle | None = None
        self._reset_cursors()

    def _reset_cursors(self) -> None:
        self._citation: MedlineCitation | None = None
        self._article: Article | None = None
        self._journal: Journal | None = None
        self._journal_issue: JournalIssue | None = None
        self._pub_date: PublicationDate | None = None
        self._pagination: Pagination | None = None
        self._author: Author | None = None
        self._heading: MeshHeading | None = None
        self._grant: Grant | None = None
        self._correction: Correction | None = None
        self._pubmed_data: PubMedData | None = None

    # -- parser target protocol ---------------------------------------------

    def start(self, tag: str, attrib: Mapping[str, str]) -> None:
        self._depth += 1
        if self._capture is not None:
            # Inline markup inside a captured leaf, e.g. <i> in a title.
            return

        name = tag.lower()
        parent: _Region | None = None
        if self._regions:
            parent, parent_depth = self._regions[-1]
            if parent_depth != self._depth - 1:
                return

        region = _REGION_TRANSITIONS.get((parent, name))
        if region is not None:
            self._regions.append((region, self._depth))
            self._enter(region, attrib)
            return
        if parent is None:
            return

        assign: Assign | None = None
        field_leaf = _FIELD_LEAVES.get((parent, name))
        if field_leaf is not None:
            cursor, attribute = field_leaf
            target = getattr(self, cursor)
            if target is not None:
                assign = partial(setattr, target, attribute)
        else:
            opener = _SPECIAL_LEAVES.get((parent, name))
            if opener is not None:
                assign = getattr(self, opener)(attrib)
        if assign is not None:
            self._buffer.clear()
            self._capture = _Capture(self._depth, assign)

    def data(self, text: str) -> None:
        if self._capture is not None:
            self._buffer.append(text)

    def end(self, tag: str) -> None:
        capture = self._capture
        if capture is not None:
            if capture.depth == self._depth:
                self._capture = None
                text = "".join(self._buffer)
                self._buffer.clear()
                capture.assign(text)
        elif self._regions and self._regions[-1][1] == self._depth:
            region, _ = self._regions.pop()
            self._leave(region)
        self._depth -= 1

    def close(self) -> List[PubMedArticle]:
        """Return the records sealed since the last :meth:`drain`."""

        return self.drain()

    def drain(self) -> List[PubMedArticle]:
        """Return and forget the records sealed so far."""

        sealed, self._sealed = self._sealed, []
        return sealed

    # -- regions ------------------------------------------------------------

    def _enter(self, region: _Region, attrib: Mapping[str, str]) -> None:
        if region is _Region.RECORD:
            self._record = PubMedArticle()
            self._reset_cursors()
            return
        record = self._record
        assert record is not None
        if region is _Region.CITATION:
            self._citation = record.medline_citation = MedlineCitation()
        elif region is _Region.PUBMED_DATA:
            self._pubmed_data = record.pubmed_data = PubMedData()
        elif region is _Region.ARTICLE and self._citation is not None:
            self._article = self._citation.article = Article()
        elif region is _Region.JOURNAL and self._article is not None:
            self._journal = self._article.journal = Journal()
        elif region is _Region.JOURNAL_ISSUE and self._journal is not None:
            self._journal_issue = self._journal.journal_issue = JournalIssue()
        elif region is _Region.PUB_DATE and self._journal_issue is not None:
            self._pub_date = self._journal_issue.pub_date = PublicationDate()
        elif region is _Region.PAGINATION and self._article is not None:
            self._pagination = self._article.pagination = Pagination()
        elif region is _Region.AUTHOR and self._article is not None:
            self._author = Author()
            self._article.authors.append(self._author)
        elif region is _Region.GRANT and self._article is not None:
            self._grant = Grant()
            self._article.grants.append(self._grant)
        elif region is _Region.MESH_HEADING:
            self._heading = None
        elif region is _Region.CORRECTION:
            self._correction = Correction(ref_type=attrib.get("RefType"))

    def _leave(self, region: _Region) -> None:
        if region is _Region.RECORD:
            self._seal()
        elif region is _Region.AUTHOR:
            self._author = None
        elif region is _Region.GRANT:
            self._grant = None
        elif region is _Region.MESH_HEADING:
            self._heading = None
        elif region is _Region.PUB_DATE:
            self._pub_date = None
        elif region is _Region.CORRECTION:
            correction, self._correction = self._correction, None
            if correction is None or self._citation is None:
                return
            if correction.pmid is None:
                LOGGER.debug("Ignoring CommentsCorrections entry without PMID")
                return
            self._citation.corrections.append(correction)

    def _seal(self) -> None:
        record, self._record = self._record, None
        self._reset_cursors()
        if record is None:
            return
        citation = record.medline_citation
        if citation is None:
            LOGGER.debug("Skipping PubmedArticle without MedlineCitation")
            return
        if citation.pmid is None:
            msg = "PubmedArticle has a MedlineCitation without PMID"
            raise MalformedDocumentError(msg)
        self._sealed.append(record)

    # -- leaves with side effects -------------------------------------------

    def _open_pmid(self, attrib: Mapping[str, str]) -> Assign | None:
        return self._assign_pmid

    def _assign_pmid(self, text: str) -> None:
        if _PMID_PATTERN.fullmatch(text) is None:
            msg = f"MedlineCitation PMID {text!r} is not an integer"
            raise MalformedDocumentError(msg)
        pmid = int(text)
        if self._citation is not None:
            self._citation.pmid = pmid

    def _open_issn(self, attrib: Mapping[str, str]) -> Assign | None:
        if self._journal is None:
            return None
        entry = JournalIssn(IssnType.from_attribute(attrib.get("IssnType")))
        self._journal.issns.append(entry)
        return partial(setattr, entry, "issn")

    def _open_issn_linking(self, attrib: Mapping[str, str]) -> Assign | None:
        if self._journal is None:
            LOGGER.debug("ISSNLinking found before any Journal element; ignored")
            return None
        entry = JournalIssn(IssnType.LINKING)
        self._journal.issns.append(entry)
        return partial(setattr, entry, "issn")

    def _open_medline_date(self, attrib: Mapping[str, str]) -> Assign | None:
        if self._pub_date is None:
            return None
        return partial(_set_medline_year, self._pub_date)

    def _open_medline_pgn(self, attrib: Mapping[str, str]) -> Assign | None:
        if self._pagination is None:
            return None
        return self._pagination.medline_pgns.append

    def _open_keyword(self, attrib: Mapping[str, str]) -> Assign | None:
        if self._citation is None:
            return None
        keyword = Keyword(major_topic=YesNo.from_attribute(attrib.get("MajorTopicYN")))
        self._citation.keywords.append(keyword)
        return partial(setattr, keyword, "keyword")

    def _open_descriptor_name(self, attrib: Mapping[str, str]) -> Assign | None:
        if self._citation is None:
            return None
        descriptor = MeshDescriptor(
            major_topic=YesNo.from_attribute(attrib.get("MajorTopicYN"))
        )
        self._heading = MeshHeading(descriptor=descriptor)
        self._citation.mesh_headings.append(self._heading)
        return partial(setattr, descriptor, "name")

    def _open_qualifier_name(self, attrib: Mapping[str, str]) -> Assign | None:
        if self._heading is None:
            LOGGER.debug("QualifierName without preceding DescriptorName; ignored")
            return None
        qualifier = MeshQualifier(
            major_topic=YesNo.from_attribute(attrib.get("MajorTopicYN"))
        )
        self._heading.qualifiers.append(qualifier)
        return partial(setattr, qualifier, "name")

    def _open_article_id(self, attrib: Mapping[str, str]) -> Assign | None:
        id_type = attrib.get("IdType")
        if id_type not in _ARTICLE_ID_TYPES or self._pubmed_data is None:
            return None
        # pubmed, pii and doi ids are recognised but not kept on the model.
        if id_type != "pmc":
            return None
        return partial(setattr, self._pubmed_data, "pmc")


def iter_articles(chunks: Iterable[bytes | str]) -> Iterator[PubMedArticle]:
    """Decode an EFetch document fed as ``chunks`` and yield its records.

    Records are yielded in document order as soon as the chunk containing
    their closing tag has been parsed.

    Raises
    ------
    MalformedDocumentError
        If the document is not well formed XML or a record cannot be decoded.
    """

    decoder = EFetchDecoder()
    parser = ET.XMLParser(target=decoder)
    try:
        for chunk in chunks:
            if not chunk:
                continue
            parser.feed(chunk)
            yield from decoder.drain()
        parser.close()
    except ET.ParseError as exc:
        msg = f"EFetch document is not well formed XML: {exc}"
        raise MalformedDocumentError(msg) from exc
    yield from decoder.drain()


def decode_articles(source: bytes | str | Iterable[bytes]) -> List[PubMedArticle]:
    """Return every record of an EFetch document.

    ``source`` may be the whole document or an iterable of byte chunks such as
    :meth:`requests.Response.iter_content`.
    """

    if isinstance(source, (bytes, str)):
        return list(iter_articles([source]))
    return list(iter_articles(source))


__all__ = ["EFetchDecoder", "decode_articles", "iter_articles"]
