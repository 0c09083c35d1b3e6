from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Literal, Tuple, Union


class SingleValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    value: str

    def as_text(self) -> str:
        return self.value.upper()


class MultiValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["multi"] = "multi"
    values: Tuple[str, ...]

    def as_text(self) -> str:
        return ",".join(v.upper() for v in self.values)


AnswerValue = Annotated[Union[SingleValue, MultiValue], Field(discriminator="kind")]


class Answer(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    value: AnswerValue
