"""Overview statistics for a loaded question bank."""


def _pct(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 1)


def get_readiness_label(score: float) -> str:
    if score >= 80:
        return "READY"
    elif score >= 65:
        return "LIKELY"
    elif score >= 50:
        return "NEEDS WORK"
    return "NOT READY"


def get_readiness_color(score: float) -> str:
    if score >= 80:
        return "green"
    elif score >= 65:
        return "yellow"
    elif score >= 50:
        return "dark_orange"
    return "red"


def split_duration(seconds: float) -> tuple[int, int, int]:
    seconds = int(seconds)
    return seconds // 3600, (seconds % 3600) // 60, seconds % 60


def overview_stats(progress) -> dict:
    completed = progress.history.completed()
    answered = sum(len(b.question_ids) for b in completed)
    correct = sum(b.num_correct for b in completed)
    total_time = sum(b.elapsed_time or 0 for b in completed)
    num_all = progress.buckets.total("all")
    num_unused = progress.buckets.total("unused")
    num_flagged = progress.buckets.total("flagged")
    seen = num_all - num_unused
    return {
        "complete_blocks": len(completed),
        "paused_blocks": len(progress.history.paused()),
        "total_answered": answered,
        "correct": correct,
        "correct_pct": _pct(correct, answered),
        "incorrect": answered - correct,
        "incorrect_pct": _pct(answered - correct, answered),
        "total_questions": num_all,
        "seen": seen,
        "seen_pct": _pct(seen, num_all),
        "flagged": num_flagged,
        "flagged_pct": _pct(num_flagged, seen),
        "avg_time": round(total_time / answered, 1) if answered else 0.0,
        "total_time": split_duration(total_time),
    }


def get_tag_scores(progress, dimension: str = None) -> list[dict]:
    """Per tag value: question count, seen count and share of seen questions answered wrong."""
    results = []
    for value, counts in progress.buckets.counts(dimension).items():
        seen = counts["all"] - counts["unused"]
        score = 100 - _pct(counts["incorrects"], seen) if seen else 0.0
        results.append({
            "tag": value,
            "total": counts["all"],
            "seen": seen,
            "incorrects": counts["incorrects"],
            "flagged": counts["flagged"],
            "score": round(score, 1),
            "label": get_readiness_label(score),
        })
    return results
