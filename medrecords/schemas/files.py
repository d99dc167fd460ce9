from datetime import datetime

from pydantic import BaseModel


class MedicalFileView(BaseModel):
    id: str
    file_name: str
    file_type: str  # LabReport | Prescription | XRay | BloodReport | MRIScan | CTScan
    file_size: int
    upload_date: datetime
    content_type: str
    file_url: str


class FileResponse(BaseModel):
    success: bool
    message: str
    file: MedicalFileView | None = None


class FileListResponse(BaseModel):
    success: bool
    message: str
    files: list[MedicalFileView] = []
