import enum

from medrecords.core.errors import ValidationError


class _ParseableEnum(str, enum.Enum):
    @classmethod
    def parse(cls, raw: str | None):
        """Case-insensitive lookup by member name; raises ValidationError on no match."""
        value = (raw or "").strip().lower()
        for member in cls:
            if member.name.lower() == value:
                return member
        raise ValidationError(cls._invalid_message())

    @classmethod
    def _invalid_message(cls) -> str:
        return f"Invalid value. Allowed: {', '.join(m.name for m in cls)}"


class Gender(_ParseableEnum):
    Male = "Male"
    Female = "Female"

    @classmethod
    def _invalid_message(cls) -> str:
        return "Invalid gender value. Please use 'Male' or 'Female'"


class FileCategory(_ParseableEnum):
    LabReport = "LabReport"
    Prescription = "Prescription"
    XRay = "XRay"
    BloodReport = "BloodReport"
    MRIScan = "MRIScan"
    CTScan = "CTScan"

    @classmethod
    def _invalid_message(cls) -> str:
        return "Invalid file type"
