"""Pydantic model of the subset of a Grype JSON report that ingestion reads."""

from pydantic import BaseModel, ConfigDict, Field


class GrypeModel(BaseModel):
    """Ignore everything Grype emits that ingestion does not read."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class GrypeFix(GrypeModel):
    versions: list[str] = Field(default_factory=list)
    state: str | None = None


class GrypeVulnerability(GrypeModel):
    id: str
    severity: str = "Unknown"
    data_source: str | None = Field(None, alias="dataSource")
    urls: list[str] = Field(default_factory=list)
    description: str | None = None
    fix: GrypeFix | None = None

    @property
    def fix_version(self) -> str | None:
        """First fix version listed by the scanner."""
        if self.fix and self.fix.versions:
            return self.fix.versions[0]
        return None

    @property
    def url(self) -> str | None:
        return self.urls[0] if self.urls else self.data_source


class GrypeArtifact(GrypeModel):
    name: str
    version: str
    type: str | None = None


class GrypeMatch(GrypeModel):
    vulnerability: GrypeVulnerability
    artifact: GrypeArtifact


class GrypeDescriptor(GrypeModel):
    name: str | None = None
    version: str | None = None


class GrypeReport(GrypeModel):
    """Top-level ``grype -o json`` document."""

    matches: list[GrypeMatch] = Field(default_factory=list)
    descriptor: GrypeDescriptor | None = None
