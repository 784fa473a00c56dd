"""Pydantic models for the subset of SARIF 2.1.0 the aggregator reads and writes."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SARIF_VERSION = "2.1.0"
SARIF_SCHEMA_URI = "https://json.schemastore.org/sarif-2.1.0.json"

SarifLevel = Literal["none", "note", "warning", "error"]


class _SarifModel(BaseModel):
    # Unknown properties are kept so native tool runs pass through unchanged.
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class SarifMessage(_SarifModel):
    text: str


class SarifArtifactLocation(_SarifModel):
    uri: str


class SarifRegion(_SarifModel):
    start_line: int | None = Field(default=None, alias="startLine", ge=1)


class SarifPhysicalLocation(_SarifModel):
    artifact_location: SarifArtifactLocation = Field(..., alias="artifactLocation")
    region: SarifRegion | None = None


class SarifLocation(_SarifModel):
    physical_location: SarifPhysicalLocation = Field(..., alias="physicalLocation")


class SarifReportingDescriptor(_SarifModel):
    id: str
    name: str | None = None
    short_description: SarifMessage | None = Field(default=None, alias="shortDescription")
    help_uri: str | None = Field(default=None, alias="helpUri")
    properties: dict[str, Any] | None = None


class SarifDriver(_SarifModel):
    name: str
    information_uri: str | None = Field(default=None, alias="informationUri")
    version: str | None = None
    semantic_version: str | None = Field(default=None, alias="semanticVersion")
    rules: list[SarifReportingDescriptor] = Field(default_factory=list)


class SarifTool(_SarifModel):
    driver: SarifDriver


class SarifResult(_SarifModel):
    rule_id: str | None = Field(default=None, alias="ruleId")
    level: SarifLevel | None = None
    message: SarifMessage
    locations: list[SarifLocation] = Field(default_factory=list)
    properties: dict[str, Any] | None = None


class SarifInvocation(_SarifModel):
    execution_successful: bool = Field(..., alias="executionSuccessful")
    start_time_utc: str | None = Field(default=None, alias="startTimeUtc")


class SarifRun(_SarifModel):
    tool: SarifTool
    results: list[SarifResult] = Field(default_factory=list)
    invocations: list[SarifInvocation] = Field(default_factory=list)


class SarifLog(_SarifModel):
    schema_uri: str = Field(default=SARIF_SCHEMA_URI, alias="$schema")
    version: Literal["2.1.0"] = SARIF_VERSION
    runs: list[SarifRun] = Field(default_factory=list)

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with SARIF property names, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
