"""Single-line progress rendering for verbose runs."""

from __future__ import annotations

from dataclasses import dataclass

CURRENT_LABEL = "HEAD"


def _checkbox(done: bool) -> str:
    return "[x]" if done else "[ ]"


def render_line(
    label: str,
    base_label: str,
    *,
    has_pre: bool,
    has_metric: bool,
    has_post: bool,
    pre_done: bool = False,
    metric_done: bool = False,
    post_done: bool = False,
) -> str:
    """Render ``"<label>: pre [x] ; metric [ ] ; post [ ]"``.

    Stages that are not configured are left out. The label column is padded
    to the longer of ``base_label`` and ``HEAD`` so base and current lines
    align when printed one under the other.
    """

    parts: list[str] = []
    if has_pre:
        parts.append(f"pre {_checkbox(pre_done)}")
    if has_metric:
        parts.append(f"metric {_checkbox(metric_done)}")
    if has_post:
        parts.append(f"post {_checkbox(post_done)}")

    width = max(len(base_label), len(CURRENT_LABEL))
    spacing = " " * (width - len(label) + 1)
    body = " ; ".join(parts) if parts else "metric [ ]"
    return f"{label}:{spacing}{body}"


@dataclass(slots=True)
class ProgressState:
    """Completion flags for one code state."""

    has_pre: bool
    has_post: bool
    has_metric: bool = True
    pre_done: bool = False
    metric_done: bool = False
    post_done: bool = False

    def render(self, label: str, base_label: str) -> str:
        return render_line(
            label,
            base_label,
            has_pre=self.has_pre,
            has_metric=self.has_metric,
            has_post=self.has_post,
            pre_done=self.pre_done,
            metric_done=self.metric_done,
            post_done=self.post_done,
        )


__all__ = ["CURRENT_LABEL", "ProgressState", "render_line"]
