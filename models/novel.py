"""Novel metadata and AI analysis models."""

from dataclasses import dataclass, field, fields
from typing import Optional

# Keys of the persisted info.json document
TITLE_KEY = "title"
URL_KEY = "url"
TAGS_KEY = "tags"
WORD_COUNT_KEY = "wordCount"
DESCRIPTION_KEY = "description"
AI_ANALYSIS_KEY = "aiAnalysis"

UNKNOWN_WORD_COUNT = "未知"


@dataclass
class AnalysisResult:
    """Structured analysis of a novel's opening chapters."""
    genre: str
    style: str
    goldfinger: str
    opening: str
    highlights: str

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisResult":
        """Build a result from parsed JSON.

        Extra keys are ignored. Required fields must be non-blank strings and
        are kept exactly as given; anything else raises ValueError, so a
        partial result is never produced.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Analysis must be a JSON object, got {type(data).__name__}")
        values = {}
        invalid = []
        for f in fields(cls):
            value = data.get(f.name)
            if not isinstance(value, str) or not value.strip():
                invalid.append(f.name)
                continue
            values[f.name] = value
        if invalid:
            raise ValueError(f"Analysis is missing required text fields: {', '.join(invalid)}")
        return cls(**values)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class NovelMetadata:
    """Catalog-derived metadata of one novel, plus optional AI analysis."""
    title: str = ""
    url: str = ""
    tags: list[str] = field(default_factory=list)
    word_count: str = UNKNOWN_WORD_COUNT
    description: str = ""
    ai_analysis: Optional[AnalysisResult] = None

    def catalog_fields(self) -> dict:
        """Fields owned by the catalog fetch; never includes aiAnalysis."""
        return {
            TITLE_KEY: self.title,
            URL_KEY: self.url,
            TAGS_KEY: list(self.tags),
            WORD_COUNT_KEY: self.word_count,
            DESCRIPTION_KEY: self.description,
        }

    def to_dict(self) -> dict:
        data = self.catalog_fields()
        if self.ai_analysis is not None:
            data[AI_ANALYSIS_KEY] = self.ai_analysis.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "NovelMetadata":
        """Read a persisted document; unknown keys are ignored."""
        analysis = None
        raw_analysis = data.get(AI_ANALYSIS_KEY)
        if isinstance(raw_analysis, dict):
            try:
                analysis = AnalysisResult.from_dict(raw_analysis)
            except ValueError:
                analysis = None
        word_count = data.get(WORD_COUNT_KEY, data.get("word_count", UNKNOWN_WORD_COUNT))
        return cls(
            title=str(data.get(TITLE_KEY, "")),
            url=str(data.get(URL_KEY, "")),
            tags=[str(t) for t in data.get(TAGS_KEY) or []],
            word_count=str(word_count),
            description=str(data.get(DESCRIPTION_KEY, "")),
            ai_analysis=analysis,
        )


@dataclass
class RankEntry:
    """One novel listed on a ranking page."""
    title: str
    url: str
