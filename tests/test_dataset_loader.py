import asyncio

import pytest
from openpyxl import Workbook
from openpyxl.styles import Font

from dataset_loader import DatasetLoadError, DatasetValidationError, load_dataset
from db.store import InMemoryStore
from item_bank import load_question_bank, seed_question_bank

CSV_BANK = """Question_ID,Stem,Response_A,Response_B,IRT_a,IRT_b,IRT_c,Answer,Module
Q1,What is 1/2 + 1/4?,3/4,2/6,1.2,-0.5,0.2,A,Fractions
Q2,Simplify 4/8,1/2,2/3,,0.8,,A,Fractions
Q3,Uncalibrated,x,y,,,,,
"""


def _write_csv(tmp_path, text=CSV_BANK):
    path = tmp_path / "bank.csv"
    path.write_text(text)
    return path


def test_csv_bank_becomes_questions(tmp_path):
    questions = {q.id: q for q in load_question_bank(_write_csv(tmp_path))}

    assert list(questions) == ["Q1", "Q2", "Q3"]
    q1 = questions["Q1"]
    assert q1.stem == "What is 1/2 + 1/4?"
    assert q1.options == ["3/4", "2/6"]
    assert q1.answer_key == "A"
    assert q1.metadata == {"a": 1.2, "b": -0.5, "c": 0.2, "module": "Fractions"}
    # Missing cells stay absent
    assert questions["Q2"].metadata == {"b": 0.8, "module": "Fractions"}
    assert "b" not in questions["Q3"].metadata


def test_missing_required_columns(tmp_path):
    path = _write_csv(tmp_path, "Question_ID,Stem,IRT_b\nQ1,x,0.1\n")
    with pytest.raises(DatasetValidationError, match="IRT_a"):
        load_question_bank(path)


def test_duplicate_question_ids(tmp_path):
    path = _write_csv(tmp_path, "Question_ID,Stem,IRT_a,IRT_b,IRT_c\nQ1,x,1,0,0\nQ1,y,1,0,0\n")
    with pytest.raises(DatasetValidationError, match="Duplicate"):
        load_question_bank(path)


def test_unsupported_or_missing_file(tmp_path):
    other = tmp_path / "bank.json"
    other.write_text("{}")
    with pytest.raises(DatasetLoadError):
        load_dataset(other)
    with pytest.raises(DatasetLoadError):
        load_dataset(tmp_path / "absent.csv")


def test_excel_answer_key_from_bold_option(tmp_path):
    wb = Workbook()
    ws = wb.active
    ws.append(["Question_ID", "Stem", "Response_A", "Response_B", "IRT_a", "IRT_b", "IRT_c"])
    ws.append(["Q1", "Pick the larger", "1/3", "1/2", 1.0, 0.25, 0.0])
    ws.append(["Q2", "No key marked", "a", "b", 1.0, -0.25, 0.0])
    ws["D2"].font = Font(bold=True)
    path = tmp_path / "bank.xlsx"
    wb.save(path)

    questions = {q.id: q for q in load_question_bank(path)}
    assert questions["Q1"].answer_key == "B"
    assert questions["Q2"].answer_key is None
    assert questions["Q1"].metadata["b"] == 0.25


def test_excel_rejects_two_bold_options(tmp_path):
    wb = Workbook()
    ws = wb.active
    ws.append(["Question_ID", "Stem", "Response_A", "Response_B", "IRT_a", "IRT_b", "IRT_c"])
    ws.append(["Q1", "Ambiguous", "1", "2", 1.0, 0.0, 0.0])
    ws["C2"].font = Font(bold=True)
    ws["D2"].font = Font(bold=True)
    path = tmp_path / "bank.xlsx"
    wb.save(path)

    with pytest.raises(DatasetValidationError, match="Multiple bold"):
        load_question_bank(path)


def test_seed_question_bank(tmp_path):
    store = InMemoryStore()
    assert asyncio.run(seed_question_bank(store, _write_csv(tmp_path))) == 3
    stored = asyncio.run(store.get_records("questions", ["Q2"]))
    assert stored[0].metadata["b"] == 0.8
