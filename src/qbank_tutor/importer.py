"""Bootstrap a dataset folder of question/solution HTML files."""
import json
import logging
import re
from pathlib import Path

from bs4 import BeautifulSoup

from qbank_tutor.db import add_folder_path
from qbank_tutor.errors import DatasetError
from qbank_tutor.userstore import legacy_snapshot_path

logger = logging.getLogger(__name__)

# Lines shaped "A)" or "A." open an answer choice.
CHOICE_RE = re.compile(r"^[ \t\u00a0]*([A-Z])[ \t\u00a0\n]*\)|^[ \t\u00a0]*([A-Z])\.", re.MULTILINE)
CORRECT_RE = re.compile(r"[Cc]orrect[ \t\u00a0\n]*[Aa]nswer[ \t\u00a0\n]*[.:][ \t\u00a0\n]*([A-Z])")


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    return soup.get_text("\n")


def extract_choices(question_html: str) -> list[str]:
    return [a or b for a, b in CHOICE_RE.findall(html_to_text(question_html))]


def extract_correct(solution_html: str) -> str:
    match = CORRECT_RE.search(html_to_text(solution_html))
    return match.group(1) if match else ""


def _write_json(path: Path, data) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")
    logger.info("Generated %s", path.name)


def build_index(folder: Path) -> tuple[dict, list[str]]:
    """Index every <qid>-q.html that has a matching <qid>-s.html."""
    index, omitted = {}, []
    for question_file in sorted(folder.glob("*-q.html")):
        qid = question_file.name.split("-")[0]
        if (folder / f"{qid}-s.html").exists():
            index[qid] = {"0": "General"}
        else:
            omitted.append(qid)
    return index, omitted


def build_choices(folder: Path, qids) -> tuple[dict, dict]:
    choices = {}
    problems = {"no_choices": [], "no_correct": [], "correct_not_in_choices": []}
    for qid in qids:
        question_file = folder / f"{qid}-q.html"
        solution_file = folder / f"{qid}-s.html"
        options = extract_choices(question_file.read_text(encoding="utf-8")) if question_file.exists() else []
        correct = extract_correct(solution_file.read_text(encoding="utf-8")) if solution_file.exists() else ""
        if not options:
            problems["no_choices"].append(qid)
        if not correct:
            problems["no_correct"].append(qid)
        if options and correct and correct not in options:
            problems["correct_not_in_choices"].append(qid)
        choices[qid] = {"options": options, "correct": correct}
    return choices, problems


def bootstrap_dataset(folder_path: str) -> dict:
    """Create any missing dataset files in a folder and report what was done.

    Existing files are never overwritten. Raises DatasetError when the folder
    holds no usable questions.
    """
    folder = Path(folder_path)
    if not folder.is_dir():
        raise DatasetError(f"Dataset path does not exist: {folder_path}")

    generated, omitted = [], []
    index_path = folder / "index.json"
    if index_path.exists():
        try:
            index = json.loads(index_path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise DatasetError(f"Could not read index.json: {e}") from e
    else:
        index, omitted = build_index(folder)
    if not index:
        raise DatasetError(f"Invalid folder - no properly formatted files detected in {folder_path}")

    if not index_path.exists():
        _write_json(index_path, index)
        _write_json(folder / "tagnames.json", {"tagnames": {"0": "General"}})
        generated += ["index.json", "tagnames.json"]

    for name in ("groups.json", "panes.json"):
        if not (folder / name).exists():
            _write_json(folder / name, {})
            generated.append(name)

    problems = {}
    if not (folder / "choices.json").exists():
        choices, problems = build_choices(folder, index)
        _write_json(folder / "choices.json", choices)
        generated.append("choices.json")
        if any(problems.values()):
            logger.warning("Problems detecting answers in %s: %s", folder_path, problems)

    return {
        "path": str(folder),
        "questions": len(index),
        "generated": generated,
        "omitted": omitted,
        "problems": problems,
        "has_progress_file": legacy_snapshot_path(folder).exists(),
    }


def import_folder(db_path: str, folder_path: str) -> dict:
    """Bootstrap a folder and remember it in the list of known banks."""
    report = bootstrap_dataset(folder_path)
    add_folder_path(db_path, report["path"])
    return report
