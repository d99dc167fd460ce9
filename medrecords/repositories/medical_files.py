from sqlalchemy import desc
from sqlalchemy.orm import Session

from medrecords.models.medical_file import MedicalFile


def get_by_id(db: Session, file_id: str) -> MedicalFile | None:
    return db.query(MedicalFile).filter(MedicalFile.id == file_id).first()


def list_for_owner(db: Session, owner_id: str) -> list[MedicalFile]:
    return (
        db.query(MedicalFile)
        .filter(MedicalFile.user_id == owner_id)
        .order_by(desc(MedicalFile.upload_date))
        .all()
    )


def create(db: Session, record: MedicalFile) -> MedicalFile:
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def delete(db: Session, record: MedicalFile) -> None:
    """Flush the row removal; the caller commits once the blob is gone."""
    db.delete(record)
    db.flush()
