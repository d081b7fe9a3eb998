"""
python -m scripts.load_survey <user_email> <csv_path> <survey_type> [year]

Loads a survey CSV for an existing user, the same way the upload endpoint does.
"""

import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, ".")

from dotenv import load_dotenv
load_dotenv()

from app.database import SessionLocal
from app.crud import survey as survey_crud
from app.crud.user import user as user_crud
from app.services.survey_upload import survey_upload_service
from app.services.learned_mapping import learned_mapping_service
from app.services.provider_type import derive_survey_source, derive_data_category


def load_survey(email: str, csv_path: str, survey_type: str, year: str):
    """Parse a CSV file and store it as a survey of the given user."""
    path = Path(csv_path)
    db = SessionLocal()

    try:
        owner = user_crud.get_by_email(db, email=email)
        if owner is None:
            raise SystemExit(f"No user with email {email}")

        df, skipped = survey_upload_service.parse_csv(path.read_bytes())
        saved_mapping = learned_mapping_service.get_column_mapping(db, owner.id)
        columns, rows = survey_upload_service.build_rows(df, saved_mapping=saved_mapping)

        survey = survey_crud.create_with_rows(
            db,
            survey_data={
                "name": path.stem,
                "year": year,
                "survey_type": survey_type,
                "survey_source": derive_survey_source(survey_type),
                "data_category": derive_data_category(survey_type),
                "file_metadata": {
                    "file_name": path.name,
                    "headers": [str(col) for col in df.columns],
                    "skipped_rows": skipped,
                },
            },
            rows=rows,
            user_id=owner.id,
        )
        print(f"Added survey {survey.id} '{survey.name}' with {len(rows)} rows ({skipped} skipped)")
        for column in columns:
            print(f"  {column.identifier} -> {column.mapping or '-'}")

    except Exception as e:
        db.rollback()
        print(f"Error: {e}")
        raise
    finally:
        db.close()

if __name__ == "__main__":
    if len(sys.argv) < 4:
        print(__doc__)
        sys.exit(1)
    load_survey(sys.argv[1], sys.argv[2], sys.argv[3], sys.argv[4] if len(sys.argv) > 4 else str(date.today().year))
