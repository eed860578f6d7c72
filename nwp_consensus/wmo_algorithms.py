"""
Weather-Code (WMO) Consensus Strategies for NWP Consensus

Reduces the weather codes produced by several NWP models for one hour to a
single representative code.

Strategies (selected by WmoConfig.algorithm):
- mode:           most frequent code, ties -> highest code
- severityGroups: dynamic-threshold scan over severity groups, then an
                  upper/lower bias pick inside the selected group
- maxSeverity:    numeric maximum
- median:         median of raw codes (upper-middle for even length)
- remappedMedian: median on the 1-28 ordinal severity scale
- bary:           3-group discrete barycenter (temperate / fog / icy)
- smart_bary:     9-group priority barycenter with a top-risk summary

Every strategy also reports the 0-5 risk badges (thunder, hail, ice, fog).
Empty input is not an error: code 0 with selection_type "empty".
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from nwp_consensus.config import (
    WmoAlgorithm,
    WmoConfig,
    algorithm_names,
    resolve_algorithm,
    ConfigError,
)
from nwp_consensus.statistics import is_valid_number, round_half_up
from nwp_consensus.wmo_tables import (
    BARY_GROUPS,
    BARY_LOWEST_GROUP,
    ORDINAL_TO_WMO,
    RISK_COUNTER_CODES,
    RISK_PRIORITY,
    RISK_SCALE,
    SMART_BARY_GROUPS,
    SMART_BARY_LOWEST_GROUP,
    UNKNOWN_ORDINAL,
    WMO_TO_ORDINAL,
)

logger = logging.getLogger(__name__)


@dataclass
class WmoResult:
    """Consensus weather code plus diagnostics for one hour."""
    code: int
    risk_counters: Dict[str, int]
    debug: Dict[str, Any] = field(default_factory=dict)
    top_risk: Optional[Dict[str, Any]] = None
    algorithm: WmoAlgorithm = WmoAlgorithm.MODE

    @property
    def selection_type(self) -> str:
        return self.debug.get("selection_type", "")

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"wmo": self.code, "risque": dict(self.risk_counters)}
        if self.algorithm is WmoAlgorithm.SMART_BARY:
            result["risks"] = dict(self.top_risk) if self.top_risk else None
        result["debug"] = self.debug
        return result


# =============================================================================
# SHARED HELPERS
# =============================================================================

def clean_codes(codes: Optional[Iterable[Any]]) -> List[int]:
    """
    Drop null / NaN / non-numeric entries and coerce the rest to int.

    Fractional values (61.7) are not weather codes and are dropped with a
    warning rather than truncated.
    """
    if codes is None:
        return []

    cleaned = []
    fractional = []
    for c in codes:
        if not is_valid_number(c):
            continue
        if float(c) != int(c):
            fractional.append(c)
            continue
        cleaned.append(int(c))

    if fractional:
        logger.warning(f"[WMO] Ignoring non-integer weather codes {fractional}")
    return cleaned


def compute_risk_counters(codes: List[int]) -> Dict[str, int]:
    """
    0-5 badge per risk: min(round(5 * matching / total), 5).

    Non-authoritative side channel for display; empty input gives all zeros.
    """
    total = len(codes)
    counters = {}
    for risk, risk_codes in RISK_COUNTER_CODES.items():
        if total == 0:
            counters[risk] = 0
            continue
        matching = sum(1 for c in codes if c in risk_codes)
        counters[risk] = min(int(round_half_up(RISK_SCALE * matching / total)), RISK_SCALE)
    return counters


def _empty_result(algorithm: WmoAlgorithm, **debug: Any) -> WmoResult:
    return WmoResult(
        code=0,
        risk_counters=compute_risk_counters([]),
        debug={"algorithm": algorithm.value, "total_models": 0,
               "selection_type": "empty", "threshold": None, **debug},
        top_risk=None,
        algorithm=algorithm,
    )


def _result(algorithm: WmoAlgorithm, codes: List[int], code: int, **debug: Any) -> WmoResult:
    debug.setdefault("threshold", None)
    return WmoResult(
        code=int(code),
        risk_counters=compute_risk_counters(codes),
        debug={"algorithm": algorithm.value, "total_models": len(codes), **debug},
        algorithm=algorithm,
    )


def _upper_median(sorted_values: List[int]) -> int:
    # Even length -> upper-middle value (index n/2)
    return sorted_values[len(sorted_values) // 2]


def _global_mode(codes: List[int]) -> int:
    counts = Counter(codes)
    return max(counts, key=lambda c: (counts[c], c))


# =============================================================================
# STRATEGIES
# =============================================================================

def wmo_mode(codes: List[int], config: WmoConfig) -> WmoResult:
    """Most frequent code; ties broken by highest numeric code."""
    if not codes:
        return _empty_result(WmoAlgorithm.MODE)

    counts = Counter(codes)
    max_count = max(counts.values())
    tied = sorted((c for c, n in counts.items() if n == max_count), reverse=True)
    selected = tied[0]
    selection_type = "severity_tiebreak" if len(tied) > 1 else "dominant"

    logger.debug(f"[WMO Mode] Selected code {selected} ({max_count}/{len(codes)}) - {selection_type}")

    return _result(
        WmoAlgorithm.MODE, codes, selected,
        selection_type=selection_type,
        frequency=max_count,
        percentage=round_half_up(max_count / len(codes) * 100, 1),
        all_counts=dict(counts),
        tie_break_codes=tied,
    )


def wmo_severity_groups(codes: List[int], config: WmoConfig) -> WmoResult:
    """
    Severity-group consensus with a dynamic share threshold.

    threshold = dynamic_threshold_base / active_groups / 100. Groups are
    scanned from most to least severe; the first whose share of models
    reaches the threshold wins, otherwise the group with the largest count.
    Inside the chosen group, more models in more-severe groups pick its
    highest observed code, more in less-severe groups pick the lowest,
    and a balance picks the upper median.
    """
    if not codes:
        return _empty_result(WmoAlgorithm.SEVERITY_GROUPS, selected_group=None)

    groups = config.severity_groups
    lowest = min(groups, key=lambda g: g.severity)
    members: Dict[str, List[int]] = {g.group_id: [] for g in groups}

    for code in codes:
        for group in groups:
            if code in group.codes:
                members[group.group_id].append(code)
                break
        else:
            substitute = min(lowest.codes)
            logger.warning(
                f"[WMO Severity] Code {code} is in no severity group, counting it as "
                f"{substitute} ('{lowest.group_id}')"
            )
            members[lowest.group_id].append(substitute)

    total = len(codes)
    active = sorted(
        (g for g in groups if members[g.group_id]),
        key=lambda g: g.severity,
        reverse=True,
    )
    threshold = config.dynamic_threshold_base / len(active) / 100 if active else 0.8

    selected = None
    selection_type = "dominant"
    for group in active:
        if len(members[group.group_id]) / total >= threshold:
            selected = group
            break

    if selected is None:
        max_count = max(len(members[g.group_id]) for g in active)
        selected = next(g for g in active if len(members[g.group_id]) == max_count)
        selection_type = "fallback"

    upper = sum(len(members[g.group_id]) for g in groups if g.severity > selected.severity)
    lower = sum(len(members[g.group_id]) for g in groups if g.severity < selected.severity)
    observed = sorted(members[selected.group_id])

    if upper > lower:
        code, adjustment = observed[-1], "upper_bias"
    elif lower > upper:
        code, adjustment = observed[0], "lower_bias"
    else:
        code, adjustment = _upper_median(observed), "balanced_median"

    logger.debug(
        f"[WMO Severity] Group '{selected.group_id}' (threshold {threshold:.3f}) "
        f"upper={upper} lower={lower} {adjustment} -> {code} ({selection_type})"
    )

    return _result(
        WmoAlgorithm.SEVERITY_GROUPS, codes, code,
        selection_type=selection_type,
        selected_group=selected.group_id,
        threshold=threshold,
        threshold_percent=round_half_up(threshold * 100, 1),
        group_counts={g.group_id: len(members[g.group_id]) for g in groups},
        adjustment={
            "type": adjustment,
            "upper_group_count": upper,
            "lower_group_count": lower,
            "selected_group_codes": observed,
        },
        sorted_groups=[
            {"id": g.group_id, "count": len(members[g.group_id]),
             "percentage": round_half_up(len(members[g.group_id]) / total * 100, 1)}
            for g in active
        ],
    )


def wmo_max_severity(codes: List[int], config: WmoConfig) -> WmoResult:
    """Numeric maximum of the codes."""
    if not codes:
        return _empty_result(WmoAlgorithm.MAX_SEVERITY)

    selected = max(codes)
    return _result(
        WmoAlgorithm.MAX_SEVERITY, codes, selected,
        selection_type="max_severity",
        frequency=codes.count(selected),
    )


def wmo_median(codes: List[int], config: WmoConfig) -> WmoResult:
    """Median of the raw codes, upper-middle value for even length."""
    if not codes:
        return _empty_result(WmoAlgorithm.MEDIAN)

    sorted_codes = sorted(codes)
    selected = _upper_median(sorted_codes)
    selection_type = "median_high_even" if len(codes) % 2 == 0 else "median_odd"

    logger.debug(f"[WMO Median] {sorted_codes} -> {selected} ({selection_type})")

    return _result(
        WmoAlgorithm.MEDIAN, codes, selected,
        selection_type=selection_type,
        sorted_codes=sorted_codes,
        median_index=len(codes) // 2,
    )


def wmo_remapped_median(codes: List[int], config: WmoConfig) -> WmoResult:
    """Median on the 1-28 ordinal severity scale, mapped back to a WMO code."""
    if not codes:
        return _empty_result(WmoAlgorithm.REMAPPED_MEDIAN)

    ordinals = []
    unknown = []
    for code in codes:
        ordinal = WMO_TO_ORDINAL.get(code)
        if ordinal is None:
            unknown.append(code)
            ordinal = UNKNOWN_ORDINAL
        ordinals.append(ordinal)

    if unknown:
        logger.warning(f"[WMO Remapped Median] Unknown codes {unknown} mapped to ordinal {UNKNOWN_ORDINAL}")

    sorted_ordinals = sorted(ordinals)
    median_ordinal = _upper_median(sorted_ordinals)
    selected = ORDINAL_TO_WMO.get(median_ordinal, 0)
    selection_type = "median_high_even" if len(codes) % 2 == 0 else "median_odd"

    logger.debug(f"[WMO Remapped Median] ordinal {median_ordinal} -> {selected} ({selection_type})")

    return _result(
        WmoAlgorithm.REMAPPED_MEDIAN, codes, selected,
        selection_type=selection_type,
        sorted_ordinals=sorted_ordinals,
        median_ordinal=median_ordinal,
        unknown_codes=unknown,
    )


def bary_round(bary: float) -> int:
    """
    Round on the first decimal digit: 0-5 rounds down, 6-9 rounds up.

    2.5 -> 2, 2.55 -> 2, 2.6 -> 3.
    """
    base = math.floor(bary)
    first_decimal = math.floor((bary - base) * 10 + 1e-9)
    return math.ceil(bary) if first_decimal > 5 else base


def wmo_bary(codes: List[int], config: WmoConfig) -> WmoResult:
    """
    3-group discrete barycenter.

    The dominant group (ties: icy > fog > temperate) decides. Fog picks 48
    only when it outnumbers 45. Otherwise each position i (1-based) of the
    group's sorted code list gets mass count_i * w_i, with w linear from 1
    to bary_max_pond, and the barycenter over the occupied range is rounded
    with bary_round.
    """
    if not codes:
        return _empty_result(WmoAlgorithm.BARY, selected_group=None, bary=None)

    group_of: Dict[int, str] = {}
    for key, (group_codes, _) in BARY_GROUPS.items():
        for code in group_codes:
            group_of[code] = key

    group_counts = {key: 0 for key in BARY_GROUPS}
    unknown = []
    for code in codes:
        key = group_of.get(code)
        if key is None:
            unknown.append(code)
            key = BARY_LOWEST_GROUP
        group_counts[key] += 1

    if unknown:
        logger.warning(f"[WMO Bary] Unknown codes {unknown} counted as '{BARY_LOWEST_GROUP}'")

    dominant = max(BARY_GROUPS, key=lambda k: (group_counts[k], BARY_GROUPS[k][1]))

    if dominant == "fog":
        c45 = codes.count(45)
        c48 = codes.count(48)
        selected = 48 if c48 > c45 else 45
        return _result(
            WmoAlgorithm.BARY, codes, selected,
            selection_type="fog_mode",
            selected_group=dominant,
            group_counts=group_counts,
        )

    group_codes = sorted(BARY_GROUPS[dominant][0])
    n = len(group_codes)
    max_pond = config.bary_max_pond
    weights = [1.0 if n <= 1 else 1 + (max_pond - 1) * i / (n - 1) for i in range(n)]

    index_of = {c: i for i, c in enumerate(group_codes)}
    occurrences = [0] * n
    for code in codes:
        if code in index_of:
            occurrences[index_of[code]] += 1

    occupied = [i for i, count in enumerate(occurrences) if count > 0]
    if not occupied:
        selected = _global_mode(codes)
        logger.warning(f"[WMO Bary] No mass in group '{dominant}', falling back to global mode {selected}")
        return _result(
            WmoAlgorithm.BARY, codes, selected,
            selection_type="fallback_mode",
            selected_group=dominant,
            group_counts=group_counts,
        )

    imin, imax = occupied[0], occupied[-1]
    sum_mass = 0.0
    sum_moment = 0.0
    for i in range(imin, imax + 1):
        mass = occurrences[i] * weights[i]
        sum_mass += mass
        sum_moment += (i + 1) * mass

    bary = sum_moment / sum_mass
    position = min(n, max(1, bary_round(bary)))
    selected = group_codes[position - 1]

    logger.debug(f"[WMO Bary] group={dominant} bary={bary:.3f} pos={position} -> {selected}")

    return _result(
        WmoAlgorithm.BARY, codes, selected,
        selection_type="barycenter",
        selected_group=dominant,
        group_counts=group_counts,
        group_codes=group_codes,
        weights=[round(w, 2) for w in weights],
        occurrences=occurrences,
        imin=imin,
        imax=imax,
        bary=round(bary, 3),
        rounded_position=position,
        max_pond=max_pond,
    )


def smart_bary_round(bary: float) -> int:
    """Half-up rounding: an exact .5 goes to the ceiling."""
    return int(math.floor(bary + 0.5))


def select_top_risk(risk_counts: Dict[str, int]) -> Optional[Dict[str, Any]]:
    """Risk with the most occurrences; ties follow RISK_PRIORITY."""
    active = {label: n for label, n in risk_counts.items() if n > 0}
    if not active:
        return None

    def rank(label: str) -> int:
        return RISK_PRIORITY.index(label) if label in RISK_PRIORITY else len(RISK_PRIORITY)

    top = max(active.values())
    label = min((lbl for lbl, n in active.items() if n == top), key=rank)
    return {"type": label, "qty": top}


def wmo_smart_bary(codes: List[int], config: WmoConfig) -> WmoResult:
    """
    9-group priority barycenter.

    Dominant group = largest count, the higher-priority group on ties. The
    0-based barycenter of positions inside that group's fixed code order
    is rounded half-up. The top risk comes from the risk-tagged groups.
    """
    if not codes:
        return _empty_result(WmoAlgorithm.SMART_BARY, dominant_group=None, bary_center=None)

    group_of: Dict[int, str] = {}
    for group in SMART_BARY_GROUPS:
        for code in group.codes:
            group_of[code] = group.key

    group_counts = {g.key: 0 for g in SMART_BARY_GROUPS}
    unknown = []
    for code in codes:
        key = group_of.get(code)
        if key is None:
            unknown.append(code)
            key = SMART_BARY_LOWEST_GROUP
        group_counts[key] += 1

    if unknown:
        logger.warning(f"[WMO Smart Bary] Unknown codes {unknown} counted as '{SMART_BARY_LOWEST_GROUP}'")

    risk_counts = {g.description: group_counts[g.key] for g in SMART_BARY_GROUPS if g.is_risk}

    # SMART_BARY_GROUPS is in priority order, so the first max wins ties
    max_count = max(group_counts.values())
    dominant = next(g for g in SMART_BARY_GROUPS if group_counts[g.key] == max_count)

    positions = [0] * len(dominant.codes)
    for code in codes:
        if code in dominant.codes:
            positions[dominant.codes.index(code)] += 1

    total_weight = sum(positions)
    bary_center = sum(i * n for i, n in enumerate(positions)) / total_weight if total_weight > 0 else 0.0
    selected_index = max(0, min(len(dominant.codes) - 1, smart_bary_round(bary_center)))
    selected = dominant.codes[selected_index]

    top_risk = select_top_risk(risk_counts)

    logger.debug(
        f"[WMO Smart Bary] Dominant group: {dominant.key} ({max_count}/{len(codes)}), "
        f"bary_center: {bary_center:.3f}, index: {selected_index}, code: {selected}"
    )

    result = _result(
        WmoAlgorithm.SMART_BARY, codes, selected,
        selection_type="barycenter_discrete",
        dominant_group=dominant.key,
        selected_group=dominant.key,
        dominant_group_data={
            "codes": list(dominant.codes),
            "count": max_count,
            "description": dominant.description,
        },
        bary_center=round(bary_center, 3),
        selected_index=selected_index,
        weights=positions,
        group_counts=group_counts,
        risk_counts=risk_counts,
    )
    result.top_risk = top_risk
    return result


# =============================================================================
# REGISTRY
# =============================================================================

WmoStrategy = Callable[[List[int], WmoConfig], WmoResult]

WMO_ALGORITHMS: Dict[WmoAlgorithm, WmoStrategy] = {
    WmoAlgorithm.MODE: wmo_mode,
    WmoAlgorithm.SEVERITY_GROUPS: wmo_severity_groups,
    WmoAlgorithm.MAX_SEVERITY: wmo_max_severity,
    WmoAlgorithm.MEDIAN: wmo_median,
    WmoAlgorithm.REMAPPED_MEDIAN: wmo_remapped_median,
    WmoAlgorithm.BARY: wmo_bary,
    WmoAlgorithm.SMART_BARY: wmo_smart_bary,
}


def is_valid_algorithm(name: str) -> bool:
    """True if `name` is a canonical strategy name or an alias."""
    try:
        resolve_algorithm(name)
    except ConfigError:
        return False
    return True


def get_available_algorithms() -> List[str]:
    return algorithm_names()


def aggregate_wmo(
    codes: Optional[Iterable[Any]],
    config: Optional[WmoConfig] = None,
    algorithm: Optional[Any] = None
) -> WmoResult:
    """
    Run the configured strategy over one hour's model codes.

    Args:
        codes: One code per model (null / NaN entries are ignored)
        config: WMO settings (defaults to WmoConfig())
        algorithm: Override for config.algorithm (enum, name or alias)

    Returns:
        WmoResult; empty input gives code 0 / selection_type "empty"
    """
    config = config or WmoConfig()
    chosen = resolve_algorithm(algorithm) if algorithm is not None else config.algorithm
    strategy = WMO_ALGORITHMS[chosen]
    return strategy(clean_codes(codes), config)
