"""SplitLedger abstraction + in-memory backend.

The production ledger is the NEAR split contract, reached through an adapter
implementing ``SplitLedger``. ``InMemorySplitLedger`` backs local runs and
tests, with optional JSON persistence for restart.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Protocol, Sequence
from uuid import uuid4

from app.models.contributor import AllocationEntry
from app.models.split import DistributionReceipt, PaymentRecipient, PendingClaim, Split

logger = logging.getLogger(__name__)


def _repo_key(repo_url: str) -> str:
    return repo_url.strip().lower().rstrip("/")


def _user_key(github_username: str) -> str:
    return github_username.strip().lstrip("@").lower()


class SplitNotFoundError(LookupError):
    pass


class SplitLedger(Protocol):
    """Split state plus payout rails. Implementations: InMemorySplitLedger, NEAR contract adapter."""

    def get_split(self, repo_url: str) -> Optional[Split]:
        ...

    def create_split(self, repo_url: str, owner: str, contributors: Sequence[AllocationEntry]) -> Split:
        ...

    def update_split(self, split_id: str, contributors: Sequence[AllocationEntry]) -> Split:
        ...

    def get_verified_wallet(self, github_username: str) -> Optional[str]:
        ...

    def store_verification(self, github_username: str, wallet_address: str, linked_by: str) -> None:
        ...

    def store_pending_verification(
        self, github_username: str, requested_by: str, code: str, expires_at: datetime
    ) -> None:
        ...

    def store_pending_distribution(
        self, github_username: str, amount: Decimal, token: str, split_id: Optional[str] = None
    ) -> str:
        ...

    def get_pending_distributions(self, github_username: str) -> list[PendingClaim]:
        ...

    def distribute(
        self, split_id: str, amount: Decimal, token: str, recipients: Sequence[PaymentRecipient]
    ) -> DistributionReceipt:
        ...


class InMemorySplitLedger:
    """In-memory SplitLedger. Optional JSON persistence for restart."""

    name = "splits"

    def __init__(self, persist_path: Optional[str] = None) -> None:
        self._splits: dict[str, Split] = {}
        self._wallets: dict[str, str] = {}
        self._pending_verifications: dict[str, dict[str, str]] = {}
        self._claims: dict[str, list[PendingClaim]] = {}
        self._receipts: list[DistributionReceipt] = []
        self._persist_path = persist_path
        if persist_path and os.path.isfile(persist_path):
            self._load()

    def _load(self) -> None:
        if not self._persist_path:
            return
        try:
            with open(self._persist_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable split ledger at %s: %s", self._persist_path, exc)
            return
        for raw in data.get("splits", []):
            split = Split.model_validate(raw)
            self._splits[_repo_key(split.repo_url)] = split
        for username, wallet in (data.get("wallets") or {}).items():
            if isinstance(username, str) and isinstance(wallet, str):
                self._wallets[_user_key(username)] = wallet
        for username, entry in (data.get("pending_verifications") or {}).items():
            if isinstance(entry, dict):
                self._pending_verifications[_user_key(username)] = entry
        for username, claims in (data.get("claims") or {}).items():
            self._claims[_user_key(username)] = [PendingClaim.model_validate(c) for c in claims]
        self._receipts = [DistributionReceipt.model_validate(r) for r in data.get("receipts", [])]

    def save(self) -> None:
        """Persist to JSON if path set."""
        if not self._persist_path:
            return
        os.makedirs(os.path.dirname(self._persist_path) or ".", exist_ok=True)
        data = {
            "splits": [s.model_dump(mode="json") for s in self._splits.values()],
            "wallets": dict(self._wallets),
            "pending_verifications": dict(self._pending_verifications),
            "claims": {
                username: [c.model_dump(mode="json") for c in claims]
                for username, claims in self._claims.items()
            },
            "receipts": [r.model_dump(mode="json") for r in self._receipts],
        }
        with open(self._persist_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=0)

    def get_split(self, repo_url: str) -> Optional[Split]:
        return self._splits.get(_repo_key(repo_url))

    def _split_by_id(self, split_id: str) -> Split:
        for split in self._splits.values():
            if split.id == split_id:
                return split
        raise SplitNotFoundError(f"Split not found: {split_id}")

    def create_split(self, repo_url: str, owner: str, contributors: Sequence[AllocationEntry]) -> Split:
        key = _repo_key(repo_url)
        if key in self._splits:
            raise ValueError(f"Split already exists for {repo_url}")
        split = Split(
            id=f"split-{uuid4().hex[:12]}",
            repo_url=repo_url,
            owner=owner,
            contributors=list(contributors),
        )
        self._splits[key] = split
        self.save()
        logger.info("Created split %s for %s (%d contributors)", split.id, repo_url, len(split.contributors))
        return split

    def update_split(self, split_id: str, contributors: Sequence[AllocationEntry]) -> Split:
        current = self._split_by_id(split_id)
        updated = current.model_copy(
            update={"contributors": list(contributors), "updated_at": datetime.now(timezone.utc)}
        )
        self._splits[_repo_key(current.repo_url)] = updated
        self.save()
        return updated

    def get_verified_wallet(self, github_username: str) -> Optional[str]:
        return self._wallets.get(_user_key(github_username))

    def store_verification(self, github_username: str, wallet_address: str, linked_by: str) -> None:
        key = _user_key(github_username)
        self._wallets[key] = wallet_address
        self._pending_verifications.pop(key, None)
        self.save()
        logger.info("Linked @%s to %s (by %s)", key, wallet_address, linked_by)

    def store_pending_verification(
        self, github_username: str, requested_by: str, code: str, expires_at: datetime
    ) -> None:
        self._pending_verifications[_user_key(github_username)] = {
            "requested_by": requested_by,
            "code": code,
            "expires_at": expires_at.isoformat(),
        }
        self.save()

    def get_pending_verification(self, github_username: str) -> Optional[dict[str, str]]:
        return self._pending_verifications.get(_user_key(github_username))

    def store_pending_distribution(
        self, github_username: str, amount: Decimal, token: str, split_id: Optional[str] = None
    ) -> str:
        claim = PendingClaim(
            id=f"claim-{uuid4().hex[:12]}",
            github_username=github_username,
            amount=Decimal(amount),
            token=token,
            split_id=split_id,
        )
        self._claims.setdefault(_user_key(github_username), []).append(claim)
        self.save()
        return claim.id

    def get_pending_distributions(self, github_username: str) -> list[PendingClaim]:
        return list(self._claims.get(_user_key(github_username), []))

    def distribute(
        self, split_id: str, amount: Decimal, token: str, recipients: Sequence[PaymentRecipient]
    ) -> DistributionReceipt:
        self._split_by_id(split_id)
        if not recipients:
            raise ValueError("No recipients to pay")
        seed = f"{split_id}:{amount}:{token}:" + ",".join(
            f"{r.github_username}={r.wallet}@{r.percentage}" for r in recipients
        )
        seed += f":{len(self._receipts)}"
        receipt = DistributionReceipt(
            split_id=split_id,
            amount=Decimal(amount),
            token=token,
            tx_hash=f"0x{hashlib.sha256(seed.encode('utf-8')).hexdigest()}",
            recipients=list(recipients),
        )
        self._receipts.append(receipt)
        self.save()
        logger.info("Distributed %s %s for %s to %d recipients", amount, token, split_id, len(recipients))
        return receipt

    def receipts(self) -> list[DistributionReceipt]:
        return list(self._receipts)
