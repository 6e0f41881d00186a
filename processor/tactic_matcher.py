"""업로드 CSV ↔ 택틱 테이블 매칭 — 파일명/별칭/패턴 + 헤더 Jaccard 유사도."""

from dataclasses import asdict, dataclass, field
from pathlib import PurePath


@dataclass
class TacticTable:
    """One configured TacticType flattened with its product/subproduct context."""

    product_name: str
    product_slug: str
    subproduct_name: str
    subproduct_slug: str
    table_name: str
    table_slug: str
    data_value: str | None = None
    filenames: list[str] = field(default_factory=list)
    aliases: list[str] = field(default_factory=list)
    headers: list[str] = field(default_factory=list)


@dataclass
class FilenameMatch:
    product: str
    subproduct: str
    table: str
    table_slug: str
    score: int
    match_type: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class HeaderMatch:
    product: str
    subproduct: str
    table: str
    table_slug: str
    similarity: float
    percent: float
    matching_headers: list[str]
    missing_headers: list[str]

    def to_dict(self) -> dict:
        return asdict(self)


def _norm_header(h: str) -> str:
    return str(h).strip().lower()


def jaccard_similarity(a, b) -> float:
    """|A∩B| / |A∪B| over normalized header names; 0.0 when both are empty."""
    sa = {_norm_header(h) for h in a if str(h).strip()}
    sb = {_norm_header(h) for h in b if str(h).strip()}
    union = sa | sb
    if not union:
        return 0.0
    return len(sa & sb) / len(union)


class TacticMatcher:
    """Rank configured tactic tables against an uploaded file."""

    EXACT_SCORE = 100
    PATTERN_SCORE = 90
    ALIAS_SCORE = 80

    def __init__(self):
        self._tables: list[TacticTable] = []

    @property
    def tables(self) -> list[TacticTable]:
        return list(self._tables)

    def load_tables(self, products: list[dict]):
        """Flatten an exported product tree into matchable tables.

        Args:
            products: [{"name": "Meta", "slug": "meta", "subproducts": [
                         {"name": ..., "slug": ..., "tactic_types": [
                           {"name": ..., "slug": ..., "expected_filenames": [...],
                            "aliases": [...], "headers": [...]}]}]}, ...]
        """
        self._tables.clear()
        for product in products:
            for sub in product.get("subproducts") or []:
                for tt in sub.get("tactic_types") or []:
                    self._tables.append(TacticTable(
                        product_name=product.get("name", ""),
                        product_slug=(product.get("slug") or "").lower(),
                        subproduct_name=sub.get("name", ""),
                        subproduct_slug=(sub.get("slug") or "").lower(),
                        table_name=tt.get("name", ""),
                        table_slug=(tt.get("slug") or "").lower(),
                        data_value=tt.get("data_value"),
                        filenames=list(tt.get("expected_filenames") or []),
                        aliases=list(tt.get("aliases") or []),
                        headers=list(tt.get("headers") or []),
                    ))

    def _score_filename(self, table: TacticTable, filename: str) -> tuple[int, str] | None:
        lowered = filename.lower()
        if filename in table.filenames:
            return self.EXACT_SCORE, "Exact Filename"
        if table.product_slug and table.table_slug:
            if lowered.startswith(f"report-{table.product_slug}-{table.table_slug}"):
                return self.PATTERN_SCORE, "Pattern Match"
        for alias in table.aliases:
            alias = alias.strip().lower()
            if alias and alias in lowered:
                return self.ALIAS_SCORE, "Alias Match"
        return None

    def match_filename(self, filename: str | None) -> list[FilenameMatch]:
        """Score every table against the filename; sorted by score, stable on ties."""
        if not filename:
            return []
        filename = PurePath(filename).name

        matches: list[FilenameMatch] = []
        for table in self._tables:
            scored = self._score_filename(table, filename)
            if scored is None:
                continue
            score, match_type = scored
            matches.append(FilenameMatch(
                product=table.product_name,
                subproduct=table.subproduct_name,
                table=table.table_name,
                table_slug=table.table_slug,
                score=score,
                match_type=match_type,
            ))
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    def match_headers(self, headers: list[str] | None) -> list[HeaderMatch]:
        """Report every table sharing at least one header, most similar first."""
        if not headers:
            return []
        uploaded = {_norm_header(h) for h in headers if str(h).strip()}

        matches: list[HeaderMatch] = []
        for table in self._tables:
            if not table.headers:
                continue
            matching = [h for h in table.headers if _norm_header(h) in uploaded]
            if not matching:
                continue
            similarity = jaccard_similarity(headers, table.headers)
            matches.append(HeaderMatch(
                product=table.product_name,
                subproduct=table.subproduct_name,
                table=table.table_name,
                table_slug=table.table_slug,
                similarity=similarity,
                percent=round(similarity * 100, 1),
                matching_headers=matching,
                missing_headers=[h for h in table.headers if _norm_header(h) not in uploaded],
            ))
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches
