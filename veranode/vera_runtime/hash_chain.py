#!/usr/bin/env python3
"""
veranode.vera_runtime.hash_chain
--------------------------------
Append-only hash chain of finalized decisions.

One block per finalized rumor, one global chain:

    current_hash = SHA256(rumor_id + content + decision
                          + canonical_json(voting_data) + previous_hash)

previous_hash of block n is current_hash of block n-1, or the configured
genesis hash for block 0. No update or delete is exposed; verification
recomputes every hash from stored fields and reports the first mismatch
instead of repairing it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..errors import IntegrityViolation
from .hashing import canonical_json, sha256_hex

log = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


def voting_snapshot(final_stats: Dict[str, Any], votes: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    The voting data sealed into a block: frozen stats plus every vote's
    public fields, ordered by nullifier. Identity seals are left out; they
    are randomized and not part of the public record.
    """
    return {
        "stats": dict(final_stats),
        "votes": [
            {
                "nullifier": v["nullifier"],
                "vote_type": v["vote_type"],
                "weight": float(v["weight"]),
                "is_within_area": bool(v["is_within_area"]),
                "timestamp": float(v["timestamp"]),
            }
            for v in sorted(votes, key=lambda x: x["nullifier"])
        ],
    }


def compute_block_hash(
    rumor_id: str,
    content: str,
    decision: str,
    voting_data: Dict[str, Any],
    previous_hash: str,
) -> str:
    return sha256_hex(f"{rumor_id}{content}{decision}{canonical_json(voting_data)}{previous_hash}")


def block_hash(block: Dict[str, Any]) -> str:
    return compute_block_hash(
        str(block.get("rumor_id", "")),
        str(block.get("content", "")),
        str(block.get("decision", "")),
        block.get("voting_data") or {},
        str(block.get("previous_hash", "")),
    )


@dataclass(frozen=True)
class ChainReport:
    ok: bool
    length: int
    bad_height: Optional[int] = None
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "length": self.length, "bad_height": self.bad_height, "reason": self.reason}


def verify_chain_report(blocks: List[Dict[str, Any]], genesis_hash: str = GENESIS_HASH) -> ChainReport:
    expected_prev = genesis_hash
    for height, blk in enumerate(blocks):
        if blk.get("previous_hash") != expected_prev:
            return ChainReport(False, len(blocks), height, "previous_hash does not link to prior block")
        recomputed = block_hash(blk)
        if recomputed != blk.get("current_hash"):
            return ChainReport(False, len(blocks), height, "current_hash does not match block contents")
        expected_prev = recomputed
    return ChainReport(True, len(blocks))


def verify_chain(blocks: List[Dict[str, Any]], genesis_hash: str = GENESIS_HASH) -> bool:
    return verify_chain_report(blocks, genesis_hash).ok


class HashChain:
    """
    Thin view over the block list kept in engine state.

    The engine holds the single writer lock around append_block; this
    class only enforces linkage.
    """

    def __init__(self, blocks: List[Dict[str, Any]], genesis_hash: str = GENESIS_HASH) -> None:
        self.blocks = blocks
        self.genesis_hash = genesis_hash

    def __len__(self) -> int:
        return len(self.blocks)

    def head_hash(self) -> str:
        return self.blocks[-1]["current_hash"] if self.blocks else self.genesis_hash

    def append_block(
        self,
        rumor: Dict[str, Any],
        decision: str,
        voting_data: Dict[str, Any],
        previous_hash: Optional[str] = None,
        now: Optional[float] = None,
    ) -> Dict[str, Any]:
        head = self.head_hash()
        prev = head if previous_hash is None else previous_hash
        if prev != head:
            raise IntegrityViolation(
                "CHAIN_FORK",
                "previous_hash does not match the current chain head",
                expected=head,
                got=prev,
            )
        current = compute_block_hash(rumor["id"], rumor["content"], decision, voting_data, prev)
        block = {
            "height": len(self.blocks),
            "rumor_id": rumor["id"],
            "content": rumor["content"],
            "decision": decision,
            "voting_data": voting_data,
            "previous_hash": prev,
            "current_hash": current,
            "ts": float(now if now is not None else time.time()),
        }
        self.blocks.append(block)
        log.info("ledger block appended height=%s rumor=%s hash=%s", block["height"], rumor["id"], current[:12])
        return block

    def verify(self) -> ChainReport:
        return verify_chain_report(self.blocks, self.genesis_hash)

    def require_intact(self) -> ChainReport:
        report = self.verify()
        if not report.ok:
            log.error(
                "hash chain integrity failure at height=%s: %s", report.bad_height, report.reason
            )
            raise IntegrityViolation("CHAIN_TAMPERED", report.reason, bad_height=report.bad_height)
        return report
