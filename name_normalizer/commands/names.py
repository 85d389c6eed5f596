from __future__ import annotations

import json
from typing import Optional

from ..core.identity.parser import NameParser
from ..core.identity.variants import VariantGenerator
from ..fields import FieldKind, create_field_normalizer
from ..learning import LearningEngine


def run_parse(raw: str, *, json_output: bool = False) -> None:
    parsed = NameParser().parse(raw)
    fields = {
        "firstName": parsed.first_name,
        "middleName": parsed.middle_name,
        "prefix": parsed.prefix,
        "lastName": parsed.last_name,
        "suffix": parsed.suffix,
        "original": parsed.original,
    }
    if json_output:
        print(json.dumps(fields, indent=2, ensure_ascii=False))
        return
    for key, value in fields.items():
        print(f"{key:>10}: {value}")


def run_variants(
    raw: str,
    *,
    kind: FieldKind = FieldKind.NAME,
    engine: Optional[LearningEngine] = None,
    collection_id: Optional[str] = None,
) -> None:
    if kind is FieldKind.NAME:
        parsed = NameParser().parse(raw)
        generator = VariantGenerator()
        for variant in generator.generate_variants(parsed):
            print(variant)
        print(f"canonical: {generator.generate_canonical(parsed)}")
        return
    if engine is None:
        raise ValueError("field variants need a learning engine")
    normalizer = create_field_normalizer(kind, engine)
    for variant in normalizer.generate_variants(raw):
        print(variant)
    result = normalizer.normalize(raw, collection_id)
    if result.source != "none":
        scope = f", collection {result.scope}" if result.scope else ""
        print(f"learned: {result.normalized} ({result.source}{scope})")
