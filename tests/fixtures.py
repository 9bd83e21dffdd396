"""Builders for E-utilities replies shared across the test suite."""

from __future__ import annotations

from typing import Callable, Sequence

import pytest

EFETCH_DOCTYPE = (
    '<!DOCTYPE PubmedArticleSet PUBLIC "-//NLM//DTD PubMedArticle, 1st January 2024//EN"'
    ' "https://dtd.nlm.nih.gov/ncbi/pubmed/out/pubmed_240101.dtd">'
)


def article_xml(pmid: int | str, title: str = "Untitled", *, pmc: str | None = None) -> str:
    """Render a small but structurally complete ``PubmedArticle`` element."""

    article_ids = f'<ArticleId IdType="pubmed">{pmid}</ArticleId>'
    if pmc:
        article_ids += f'<ArticleId IdType="pmc">{pmc}</ArticleId>'
    return f"""
  <PubmedArticle>
    <MedlineCitation Status="MEDLINE" Owner="NLM">
      <PMID Version="1">{pmid}</PMID>
      <Article PubModel="Print">
        <Journal>
          <ISSN IssnType="Print">0000-0000</ISSN>
          <JournalIssue CitedMedium="Print">
            <Volume>1</Volume>
            <PubDate><Year>2020</Year></PubDate>
          </JournalIssue>
          <Title>{title} Journal</Title>
        </Journal>
        <ArticleTitle>{title}</ArticleTitle>
      </Article>
    </MedlineCitation>
    <PubmedData>
      <ArticleIdList>{article_ids}</ArticleIdList>
    </PubmedData>
  </PubmedArticle>"""


def efetch_document(articles: Sequence[str]) -> bytes:
    """Wrap rendered ``PubmedArticle`` elements into an EFetch reply."""

    body = "\n".join(articles)
    return (
        '<?xml version="1.0" ?>\n'
        f"{EFETCH_DOCTYPE}\n<PubmedArticleSet>{body}\n</PubmedArticleSet>\n"
    ).encode("utf-8")


@pytest.fixture()
def efetch_xml_factory() -> Callable[[Sequence[int]], bytes]:
    """Return a helper rendering an EFetch reply holding the given PMIDs."""

    def _build(pmids: Sequence[int]) -> bytes:
        return efetch_document([article_xml(pmid, f"Title {pmid}") for pmid in pmids])

    return _build


def esearch_xml(
    count: int,
    *,
    web_env: str | None = "MCID_abc",
    query_key: str | None = "1",
    ids: Sequence[int] = (),
) -> str:
    """Render an ESearch ``eSearchResult`` reply."""

    id_list = "".join(f"<Id>{pmid}</Id>" for pmid in ids)
    history = ""
    if query_key is not None:
        history += f"<QueryKey>{query_key}</QueryKey>"
    if web_env is not None:
        history += f"<WebEnv>{web_env}</WebEnv>"
    return (
        '<?xml version="1.0" encoding="UTF-8" ?>\n'
        f"<eSearchResult><Count>{count}</Count><RetMax>{len(ids)}</RetMax>"
        f"<RetStart>0</RetStart>{history}<IdList>{id_list}</IdList>"
        "<TranslationSet/><TranslationStack><TermSet><Term>asthma[All Fields]</Term>"
        "<Field>All Fields</Field><Count>999999</Count><Explode>N</Explode></TermSet>"
        "<OP>GROUP</OP></TranslationStack>"
        "<QueryTranslation>asthma[All Fields]</QueryTranslation></eSearchResult>"
    )
