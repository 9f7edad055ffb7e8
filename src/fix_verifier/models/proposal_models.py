"""Wire shapes for fix-proposal service replies and their tagged parse result."""

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class ProposedChange(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    file_path: StrictStr = Field(alias="filePath", min_length=1)
    modified_content: StrictStr = Field(alias="modifiedContent")


class FixProposal(BaseModel):
    """Required shape of a fix-proposal reply."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    explanation: StrictStr = "No explanation provided"
    approach: StrictStr = "No approach summary provided"
    changes: list[ProposedChange] = Field(min_length=1)


class ProposalOk(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["ok"] = "ok"
    proposal: FixProposal


class ProposalParseError(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["parse_error"] = "parse_error"
    reason: str
    raw_text: str


ParsedProposal = Union[ProposalOk, ProposalParseError]
