"""
Common — バスペイロードの基底モデル

ペイロードは camelCase のフィールド名を持つ素の JSON オブジェクトとして流れる。
Python 側は snake_case 属性を使い、alias generator が両者を変換する。
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BusEvent(BaseModel):
    """バスで送受信する全ペイロードの基底クラス"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
