from pathlib import PurePath
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class FineTuneConfig(BaseModel):
    """Training configuration forwarded as the `config` field of POST /finetune."""

    model_id: str
    task_type: str = "text-generation"
    epochs: int = Field(default=3, ge=1)
    batch_size: int = Field(default=8, ge=1)
    learning_rate: float = Field(default=5e-5, gt=0)
    push_to_hub: bool = False
    repo_name: str = ""

    model_config = {"protected_namespaces": (), "extra": "allow"}

    def with_default_repo_name(self, dataset: Optional[str]) -> "FineTuneConfig":
        """Fill an empty `repo_name` as finetuned-<model basename>-<dataset stem>."""
        if self.repo_name or not dataset:
            return self
        model_base = self.model_id.split("/")[-1]
        stem = PurePath(dataset).name.split(".")[0]
        return self.model_copy(update={"repo_name": f"finetuned-{model_base}-{stem}"})


class FineTuneRequest(BaseModel):
    """What a UI sends to start fine-tuning an uploaded dataset."""

    file_id: str
    config: FineTuneConfig
    dataset: Optional[str] = None


class GenerationConfig(BaseModel):
    max_length: int = Field(default=100, ge=1)
    temperature: float = Field(default=0.7, ge=0)
    top_p: float = Field(default=0.9, gt=0, le=1)
    top_k: int = Field(default=50, ge=0)


class QueryRequest(BaseModel):
    model_id: str
    input: str = Field(min_length=1)
    generation_config: GenerationConfig = Field(default_factory=GenerationConfig)

    model_config = {"protected_namespaces": ()}

    def to_wire(self) -> Dict[str, Any]:
        """Flatten into the body POST /query expects."""
        return {
            "model_id": self.model_id,
            "query": self.input,
            **self.generation_config.model_dump(),
        }


class QueryResponse(BaseModel):
    response: Any = None

    model_config = {"extra": "allow"}


class SubmittedJob(BaseModel):
    job_id: str


class UploadedFile(BaseModel):
    file_id: str
    filename: Optional[str] = None


class ModelInfo(BaseModel):
    id: str
    name: Optional[str] = None

    model_config = {"extra": "allow"}
