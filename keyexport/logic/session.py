"""Per-session memory of redemption outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class RedemptionSession:
    """Failures and selections seen during one run.

    Nothing here is persisted; a new session starts clean.
    """

    failed_choice_items: set[tuple[str, str]] = field(default_factory=set)
    failed_redemptions: set[tuple[str, str]] = field(default_factory=set)
    selected_items: set[tuple[str, str]] = field(default_factory=set)

    def mark_choice_failed(self, gamekey: str, item_id: str) -> None:
        self.failed_choice_items.add((gamekey, item_id))

    def choice_failed(self, gamekey: str, item_id: str) -> bool:
        return (gamekey, item_id) in self.failed_choice_items

    def mark_selected(self, gamekey: str, item_ids: list[str]) -> None:
        self.selected_items.update((gamekey, item_id) for item_id in item_ids)

    def was_selected(self, gamekey: str, item_id: str) -> bool:
        return (gamekey, item_id) in self.selected_items

    def mark_redemption_failed(self, category_id: str, machine_name: str) -> None:
        self.failed_redemptions.add((category_id, machine_name))

    def redemption_failed(self, category_id: str, machine_name: str) -> bool:
        return (category_id, machine_name) in self.failed_redemptions
