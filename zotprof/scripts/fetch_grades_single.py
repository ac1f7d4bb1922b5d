import asyncio
import os

import httpx
import pandas as pd

from zotprof.settings import HTTP_TIMEOUT
from zotprof.services.grades import GradesClient, calculate_grade_percentages
from zotprof.services.models import GRADE_KEYS, instructor_last_name


# --- Step 1: fetch one instructor/course pair ---
async def fetch_course(instructor, course_number):
    """
    Fetch grade records for one instructor + course number.
    Example: instructor='Pattis', course_number='33'
    """
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http:
        records = await GradesClient(http).fetch_grades(instructor, course_number)

    rows = []
    for r in records:
        row = {
            "instructor": r.instructor,
            "department": r.department,
            "course_number": r.course_number,
            "year": r.year,
            "quarter": r.quarter,
            "section_code": r.section_code,
        }
        row.update({g: r.count(g) for g in GRADE_KEYS})
        rows.append(row)
    return pd.DataFrame(rows), records


# --- Step 2: save CSV ---
def save_course_csv(df, instructor, course_number):
    os.makedirs("data/raw", exist_ok=True)
    out_path = f"data/raw/{instructor_last_name(instructor)}_{course_number.upper()}.csv"
    df.to_csv(out_path, index=False)
    print(f"✅ Saved {len(df)} rows to {out_path}")


# --- Step 3: run manually ---
if __name__ == "__main__":
    instructor = input("Instructor (e.g., Pattis): ").strip()
    course_number = input("Course number (e.g., 33): ").strip()

    df, records = asyncio.run(fetch_course(instructor, course_number))
    if df.empty:
        print("😕 No grade records found.")
    else:
        print(df.head())
        pct = calculate_grade_percentages(records)
        if pct:
            print(f"A {pct.a}% | B {pct.b}% | C {pct.c}% | D {pct.d}% | F {pct.f}% ({pct.total} graded)")
        save_course_csv(df, instructor, course_number)
