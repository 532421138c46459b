"""Bidder identity resolution with confidence scoring and human review."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .config import MatchingConfig
from .directory import BidderDirectory
from .errors import BidLedgerError, ConflictError, ValidationError
from .models import BidEvent, NameMatch
from .normalize import clean_text, display_name, name_key, normalize_name
from .similarity import SimilarityScorer, create_scorer
from .store import Store
from .utils import log_match_decision, timestamp

logger = logging.getLogger(__name__)

DECISION_ACTIONS = ("keep", "assign", "create")


@dataclass
class Candidate:
    """A bidder scored against one raw name."""

    bidder_id: int
    canonical_name: str
    score: float
    matched_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bidder_id": self.bidder_id,
            "canonical_name": self.canonical_name,
            "score": round(self.score, 4),
            "matched_name": self.matched_name,
        }


@dataclass
class MatchResult:
    raw_name: str
    key: str
    bidder_id: Optional[int]
    score: float
    needs_review: bool
    suggestions: List[Candidate] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_name": self.raw_name,
            "bidder_id": self.bidder_id,
            "score": round(self.score, 4),
            "needs_review": self.needs_review,
            "suggestions": [candidate.to_dict() for candidate in self.suggestions],
        }


@dataclass
class BidderDecision:
    """Human decision for one raw name of a bid event."""

    raw_name: str
    action: str
    bidder_id: Optional[int] = None
    canonical_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BidderDecision":
        if not isinstance(data, Mapping):
            raise ValidationError("Decision must be a mapping")
        raw_name = data.get("raw_name")
        if not isinstance(raw_name, str) or not raw_name.strip():
            raise ValidationError("Decision requires 'raw_name'")
        action = str(data.get("action") or "").strip().lower()
        if action not in DECISION_ACTIONS:
            raise ValidationError(
                f"Unknown decision action {data.get('action')!r}; expected one of {', '.join(DECISION_ACTIONS)}"
            )
        bidder_id = data.get("bidder_id")
        if action == "assign":
            if bidder_id is None or isinstance(bidder_id, bool):
                raise ValidationError("'assign' decisions require 'bidder_id'")
            try:
                bidder_id = int(bidder_id)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid bidder_id {bidder_id!r}") from None
        canonical_name = data.get("canonical_name")
        if canonical_name is not None and not isinstance(canonical_name, str):
            raise ValidationError("'canonical_name' must be text")
        return cls(
            raw_name=raw_name,
            action=action,
            bidder_id=bidder_id if action == "assign" else None,
            canonical_name=canonical_name,
        )


class IdentityResolver:
    """Matches raw bidder names against the directory."""

    def __init__(
        self,
        store: Store,
        config: Optional[MatchingConfig] = None,
        scorer: Optional[SimilarityScorer] = None,
    ) -> None:
        self.store = store
        self.config = config or MatchingConfig()
        self.scorer = scorer or create_scorer(self.config.scorer)
        self.directory = BidderDirectory(store)

    # ------------ Scoring ------------
    def rank_candidates(self, raw_name: str, exclude: Iterable[int] = ()) -> List[Candidate]:
        """Every bidder scored against ``raw_name``, best first.

        A bidder scores the maximum over its canonical name and aliases;
        ties are broken by canonical name.
        """

        key = normalize_name(raw_name)
        if not key:
            return []
        excluded: Set[int] = set(exclude)
        ranked: List[Candidate] = []
        for bidder in self.store.bidders.values():
            if bidder.id in excluded:
                continue
            best: Optional[Candidate] = None
            for name in [bidder.canonical_name, *bidder.aliases]:
                score = self.scorer.score(key, normalize_name(name))
                if best is None or score > best.score:
                    best = Candidate(bidder.id, bidder.canonical_name, score, name)
            if best is not None and best.score >= self.config.min_suggestion_score:
                ranked.append(best)
        ranked.sort(key=lambda cand: (-cand.score, name_key(cand.canonical_name), cand.bidder_id))
        return ranked

    def match_name(self, raw_name: str) -> MatchResult:
        """Auto-assign a confident match or flag the name for review."""

        key = normalize_name(raw_name)
        ranked = self.rank_candidates(raw_name)
        top = ranked[0] if ranked else None
        if key and top is not None and top.score >= self.config.auto_match_threshold:
            result = MatchResult(raw_name, key, top.bidder_id, top.score, needs_review=False)
        else:
            result = MatchResult(
                raw_name,
                key,
                bidder_id=None,
                score=top.score if top else 0.0,
                needs_review=True,
                suggestions=ranked[: max(int(self.config.suggestion_limit), 0)],
            )
        logger.debug(
            "Matched '%s' -> %s (score=%.3f, review=%s)",
            raw_name,
            result.bidder_id,
            result.score,
            result.needs_review,
        )
        self._log(result)
        return result

    def resolve_names(self, raw_names: Iterable[str]) -> Dict[str, MatchResult]:
        """Match each distinct raw name once, keeping first-seen order."""

        results: Dict[str, MatchResult] = {}
        for raw_name in raw_names:
            if raw_name not in results:
                results[raw_name] = self.match_name(raw_name)
        return results

    def assign(self, raw_name: str) -> NameMatch:
        """Resolve ``raw_name`` to a bidder id, creating one when unmatched.

        Must run inside a store transaction.
        """

        result = self.match_name(raw_name)
        if not result.needs_review and result.bidder_id is not None:
            return NameMatch(raw_name, result.bidder_id, result.score, needs_review=False, method="auto")

        canonical = display_name(raw_name)
        existing = self.directory.find_by_name(canonical)
        if existing is not None:
            self.directory.add_alias(existing, raw_name)
            return NameMatch(raw_name, existing.id, result.score, needs_review=True, method="auto")

        aliases = [raw_name] if clean_text(raw_name) != canonical else []
        bidder = self.directory.create_bidder(canonical, aliases=aliases)
        return NameMatch(
            raw_name,
            bidder.id,
            result.score,
            needs_review=True,
            method="created",
            created_bidder=True,
        )

    # ------------ Review ------------
    def review(self, bid_event_id: int) -> Dict[str, Any]:
        """Review view of one bid event: summary, packages and bidders."""

        event = self.store.get_bid_event(bid_event_id)
        names = [self._name_view(match) for match in event.matches]
        by_raw = {item["raw_name"]: item for item in names}

        packages: List[Dict[str, Any]] = []
        bid_count = 0
        for package in self.store.packages_for_event(event.id):
            bids = []
            for bid in self.store.bids_for_package(package.id):
                name_view = by_raw.get(bid.raw_name or "", {})
                bidder = self.store.bidders.get(bid.bidder_id)
                bids.append(
                    {
                        "bid_id": bid.id,
                        "raw_name": bid.raw_name,
                        "bidder_id": bid.bidder_id,
                        "bidder_name": bidder.canonical_name if bidder else None,
                        "amount": bid.amount,
                        "was_selected": bid.was_selected,
                        "needs_review": bool(name_view.get("needs_review", False)),
                        "score": name_view.get("score"),
                        "suggestions": name_view.get("suggestions", []),
                    }
                )
            bid_count += len(bids)
            packages.append(
                {
                    "package_id": package.id,
                    "package_code": package.code,
                    "package_name": package.name,
                    "selected_bidder_id": package.selected_bidder_id,
                    "bids": bids,
                }
            )

        summary = {
            "bid_event_id": event.id,
            "project_id": event.project_id,
            "source": event.source,
            "created_at": event.created_at,
            "package_count": len(packages),
            "bid_count": bid_count,
            "name_count": len(event.matches),
            "needs_review": sum(1 for match in event.matches if match.needs_review),
            "auto_matched": sum(1 for match in event.matches if match.method == "auto" and not match.needs_review),
            "created": sum(1 for match in event.matches if match.method == "created"),
            "manual": sum(1 for match in event.matches if match.method == "manual"),
        }
        all_bidders = [
            {"id": bidder.id, "canonical_name": bidder.canonical_name, "aliases": sorted(bidder.aliases)}
            for bidder in self.directory.all()
        ]
        return {"summary": summary, "names": names, "packages": packages, "all_bidders": all_bidders}

    def _name_view(self, match: NameMatch) -> Dict[str, Any]:
        bidder = self.store.bidders.get(match.bidder_id)
        suggestions: List[Dict[str, Any]] = []
        if match.needs_review:
            limit = max(int(self.config.suggestion_limit), 0)
            ranked = self.rank_candidates(match.raw_name, exclude={match.bidder_id})
            suggestions = [candidate.to_dict() for candidate in ranked[:limit]]
        return {
            "raw_name": match.raw_name,
            "bidder_id": match.bidder_id,
            "bidder_name": bidder.canonical_name if bidder else None,
            "score": round(match.score, 4),
            "needs_review": match.needs_review,
            "method": match.method,
            "created_bidder": match.created_bidder,
            "suggestions": suggestions,
        }

    # ------------ Decisions ------------
    def apply_decisions(self, bid_event_id: int, decisions: Sequence[Any]) -> Dict[str, Any]:
        """Apply human decisions for one bid event, all or nothing.

        The failing item's position is reported on the raised error's
        ``row`` attribute.
        """

        event = self.store.get_bid_event(bid_event_id)
        parsed: List[BidderDecision] = []
        for index, raw in enumerate(decisions):
            try:
                decision = raw if isinstance(raw, BidderDecision) else BidderDecision.from_dict(raw)
                if event.match_for(decision.raw_name) is None:
                    raise ValidationError(
                        f"Bidder name '{decision.raw_name}' is not part of bid event {event.id}"
                    )
            except BidLedgerError as exc:
                if exc.row is None:
                    exc.row = index
                raise
            parsed.append(decision)

        with self.store.transaction("apply_bidder_decisions"):
            for index, decision in enumerate(parsed):
                try:
                    self._apply(event, decision)
                except BidLedgerError as exc:
                    if exc.row is None:
                        exc.row = index
                    raise

        logger.info("Applied %d bidder decisions to bid event %s", len(parsed), event.id)
        return self.review(event.id)

    def _apply(self, event: BidEvent, decision: BidderDecision) -> None:
        match = event.match_for(decision.raw_name)
        if match is None:
            raise ValidationError(f"Bidder name '{decision.raw_name}' is not part of bid event {event.id}")

        if decision.action == "keep":
            self.store.get_bidder(match.bidder_id)
        elif decision.action == "assign":
            target = self.store.get_bidder(decision.bidder_id)
            self.directory.add_alias(target, match.raw_name)
            self._reassign(event, match, target.id)
        else:
            canonical = clean_text(decision.canonical_name) or display_name(match.raw_name)
            existing = self.directory.find_by_name(canonical)
            if existing is not None and existing.id != match.bidder_id:
                raise ConflictError(f"Bidder '{existing.canonical_name}' already exists (id {existing.id})")
            if existing is None:
                aliases = [match.raw_name] if name_key(match.raw_name) != name_key(canonical) else []
                created = self.directory.create_bidder(canonical, aliases=aliases)
                self._reassign(event, match, created.id)

        match.needs_review = False
        match.method = "manual"

    def _reassign(self, event: BidEvent, match: NameMatch, bidder_id: int) -> None:
        previous = match.bidder_id
        for package in self.store.packages_for_event(event.id):
            for bid in self.store.bids_for_package(package.id):
                if bid.raw_name != match.raw_name:
                    continue
                bid.bidder_id = bidder_id
                if bid.was_selected:
                    package.selected_bidder_id = bidder_id
        was_created = match.created_bidder
        match.bidder_id = bidder_id
        match.created_bidder = False
        if was_created and previous != bidder_id:
            self.directory.delete_if_unreferenced(previous)

    def _log(self, result: MatchResult) -> None:
        if not self.config.log_path:
            return
        log_match_decision(
            self.config.log_path,
            {
                "timestamp": timestamp(),
                "raw_name": result.raw_name,
                "key": result.key,
                "bidder_id": result.bidder_id,
                "score": round(result.score, 4),
                "status": "needs_review" if result.needs_review else "auto_accepted",
                "suggestions": [candidate.to_dict() for candidate in result.suggestions],
            },
        )


__all__ = ["BidderDecision", "Candidate", "IdentityResolver", "MatchResult", "DECISION_ACTIONS"]
