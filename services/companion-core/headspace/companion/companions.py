from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml

from ..schemas.companion import Companion

CATALOG_PATH = Path(__file__).with_name("companions.yaml")


class CompanionCatalog:
    def __init__(self, catalog_path: Optional[Path] = None) -> None:
        self.path = catalog_path or CATALOG_PATH
        self.companions: Dict[str, Companion] = {}
        self.default_id = "default"
        self.skip_quiz_id = "aura_calm"
        self._load()

    def _load(self) -> None:
        parsed = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        if not isinstance(parsed, dict):
            raise RuntimeError(f"Companion catalog {self.path} did not produce an object")
        for item in parsed.get("companions") or []:
            companion = Companion(**item)
            self.companions[companion.id] = companion
        self.default_id = str(parsed.get("default_companion") or self.default_id)
        self.skip_quiz_id = str(parsed.get("skip_quiz_companion") or self.skip_quiz_id)
        if self.default_id not in self.companions:
            raise RuntimeError("Companion catalog has no default companion")

    def resolve(self, companion_id: Optional[str]) -> Companion:
        return self.companions.get(companion_id or "") or self.companions[self.default_id]

    def all(self) -> List[Companion]:
        return list(self.companions.values())

    def score_quiz(self, answers: Iterable[str]) -> Companion:
        """Pick the companion chosen most often; on a tie the later first-seen answer wins."""
        counts: Dict[str, int] = {}
        for answer in answers:
            if answer in self.companions:
                counts[answer] = counts.get(answer, 0) + 1
        if not counts:
            return self.companions[self.skip_quiz_id]
        winner = None
        for personality, count in counts.items():
            if winner is None or count >= counts[winner]:
                winner = personality
        return self.companions[winner]

    def skip_quiz(self) -> Companion:
        return self.companions[self.skip_quiz_id]


catalog = CompanionCatalog()
