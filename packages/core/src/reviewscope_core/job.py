from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class ReviewJob:
    """One review request, immutable once enqueued."""

    installation_id: int
    repository_id: int
    repository_full_name: str
    pr_number: int
    head_sha: str
    base_sha: str = ""
    pr_title: str = ""
    pr_body: str = ""
    delivery_id: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> ReviewJob:
        return cls(
            installation_id=int(data["installation_id"]),
            repository_id=int(data["repository_id"]),
            repository_full_name=data["repository_full_name"],
            pr_number=int(data["pr_number"]),
            head_sha=data["head_sha"],
            base_sha=data.get("base_sha") or "",
            pr_title=data.get("pr_title") or "",
            pr_body=data.get("pr_body") or "",
            delivery_id=data.get("delivery_id") or "",
        )

    def to_dict(self) -> dict:
        return asdict(self)
