"""Per-subsidiary onboarding form payloads.

All three subsidiaries share personal info, education, employment history and
declaration sections; government IDs and bank details differ per country.
"""
import re
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .onboarding import Subsidiary

PDF_MIME_TYPE = "application/pdf"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class EducationLevel(str, Enum):
    PRIMARY_SCHOOL = "PrimarySchool"
    HIGH_SCHOOL = "HighSchoolSecondary"
    DIPLOMA = "Diploma"
    BACHELORS = "Bachelors"
    MASTERS = "Masters"
    DOCTORATE = "Doctorate"
    OTHER = "Other"


class AccountType(str, Enum):
    CHECKING = "Checking"
    SAVINGS = "Savings"


class _FormModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


NonEmptyStr = Annotated[str, Field(min_length=1)]


class FileAsset(_FormModel):
    url: NonEmptyStr
    s3_key: NonEmptyStr
    mime_type: NonEmptyStr
    size_bytes: Optional[int] = None
    original_name: Optional[NonEmptyStr] = None


class PdfFileAsset(FileAsset):
    @model_validator(mode="after")
    def _require_pdf(self):
        if self.mime_type.lower() != PDF_MIME_TYPE:
            raise ValueError("file must be a PDF")
        return self


class ImageFileAsset(FileAsset):
    @model_validator(mode="after")
    def _require_image(self):
        if not self.mime_type.lower().startswith("image/"):
            raise ValueError("file must be an image")
        return self


class ResidentialAddress(_FormModel):
    address_line1: NonEmptyStr
    city: Optional[NonEmptyStr] = None
    state: Optional[NonEmptyStr] = None
    postal_code: Optional[NonEmptyStr] = None
    from_date: date
    to_date: date


def _last_ten_digits(value: Optional[str]) -> str:
    digits = re.sub(r"\D", "", value or "")
    return digits[-10:]


class PersonalInfo(_FormModel):
    first_name: NonEmptyStr
    last_name: NonEmptyStr
    email: NonEmptyStr
    gender: Gender
    date_of_birth: date
    can_provide_proof_of_age: bool
    residential_address: ResidentialAddress
    phone_home: Optional[NonEmptyStr] = None
    phone_mobile: NonEmptyStr
    emergency_contact_name: NonEmptyStr
    emergency_contact_number: NonEmptyStr
    reference1_name: NonEmptyStr
    reference1_phone_number: NonEmptyStr
    reference2_name: NonEmptyStr
    reference2_phone_number: NonEmptyStr
    has_consent_to_contact_references_or_emergency_contact: bool

    @model_validator(mode="after")
    def _check_contacts(self):
        mobile = _last_ten_digits(self.phone_mobile)
        emergency = _last_ten_digits(self.emergency_contact_number)
        if mobile and emergency and mobile == emergency:
            raise ValueError("Emergency contact number must be different from your mobile number")
        if self.has_consent_to_contact_references_or_emergency_contact is not True:
            raise ValueError(
                "You must confirm you have permission for us to contact your references and/or emergency contact"
            )
        return self


_PRIMARY_FIELDS = ("school_name", "school_location", "primary_year_completed")
_HIGH_SCHOOL_FIELDS = (
    "high_school_institution_name",
    "high_school_board",
    "high_school_stream",
    "high_school_year_completed",
    "high_school_grade_or_percentage",
)
_TERTIARY_FIELDS = (
    "institution_name",
    "university_or_board",
    "field_of_study",
    "start_year",
    "end_year",
    "grade_or_cgpa",
)


class EducationEntry(_FormModel):
    highest_level: EducationLevel

    school_name: Optional[str] = None
    school_location: Optional[str] = None
    primary_year_completed: Optional[int] = None

    high_school_institution_name: Optional[str] = None
    high_school_board: Optional[str] = None
    high_school_stream: Optional[str] = None
    high_school_year_completed: Optional[int] = None
    high_school_grade_or_percentage: Optional[str] = None

    institution_name: Optional[str] = None
    university_or_board: Optional[str] = None
    field_of_study: Optional[str] = None
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    grade_or_cgpa: Optional[str] = None

    @model_validator(mode="after")
    def _check_level_fields(self):
        level = self.highest_level
        if level == EducationLevel.PRIMARY_SCHOOL:
            required = ("school_name", "primary_year_completed")
            disallowed = _HIGH_SCHOOL_FIELDS + _TERTIARY_FIELDS
        elif level == EducationLevel.HIGH_SCHOOL:
            required = ("high_school_institution_name", "high_school_year_completed")
            disallowed = _PRIMARY_FIELDS + _TERTIARY_FIELDS
        else:
            required = ("institution_name", "field_of_study", "end_year")
            disallowed = _PRIMARY_FIELDS + _HIGH_SCHOOL_FIELDS

        for name in required:
            if getattr(self, name) in (None, ""):
                raise ValueError(f"{name} is required when highest_level is {level.value}")
        for name in disallowed:
            if getattr(self, name) is not None:
                raise ValueError(f"{name} is not allowed when highest_level is {level.value}")
        return self


class EmploymentHistoryEntry(_FormModel):
    organization_name: NonEmptyStr
    designation: NonEmptyStr
    start_date: date
    end_date: date
    reason_for_leaving: NonEmptyStr
    experience_certificate_file: Optional[PdfFileAsset] = None


class Signature(_FormModel):
    file: ImageFileAsset
    signed_at: datetime


class Declaration(_FormModel):
    has_accepted_declaration: bool
    signature: Signature
    declaration_date: date

    @model_validator(mode="after")
    def _require_acceptance(self):
        if self.has_accepted_declaration is not True:
            raise ValueError("You must accept the declaration before submitting")
        return self


class IdentityDocument(_FormModel):
    issue_date: date
    expiry_date: date
    front_file: PdfFileAsset
    back_file: PdfFileAsset


class PassportDocument(IdentityDocument):
    passport_number: NonEmptyStr


class DriversLicenseDocument(IdentityDocument):
    license_number: NonEmptyStr


class OptionalTwoSidedDocument(_FormModel):
    front_file: Optional[PdfFileAsset] = None
    back_file: Optional[PdfFileAsset] = None


class SingleFileDocument(_FormModel):
    file: PdfFileAsset


class _CommonFormData(_FormModel):
    personal_info: PersonalInfo
    education: list[EducationEntry] = Field(min_length=1, max_length=1)
    has_previous_employment: bool
    employment_history: list[EmploymentHistoryEntry] = Field(default_factory=list, max_length=3)
    declaration: Declaration

    @model_validator(mode="after")
    def _check_employment_history(self):
        if self.has_previous_employment and not self.employment_history:
            raise ValueError("At least one employment history entry is required")
        return self


# India

class AadhaarDocument(_FormModel):
    aadhaar_number: NonEmptyStr
    file: PdfFileAsset


class PanCardDocument(_FormModel):
    pan_number: NonEmptyStr
    file: PdfFileAsset


class IndiaGovernmentIds(_FormModel):
    aadhaar: AadhaarDocument
    pan_card: PanCardDocument
    passport: Optional[PassportDocument] = None
    drivers_license: Optional[DriversLicenseDocument] = None


class IndiaBankDetails(_FormModel):
    bank_name: NonEmptyStr
    branch_name: NonEmptyStr
    account_holder_name: NonEmptyStr
    account_number: NonEmptyStr
    ifsc_code: NonEmptyStr
    upi_id: Optional[NonEmptyStr] = None
    void_cheque: Optional[SingleFileDocument] = None


class IndiaOnboardingFormData(_CommonFormData):
    government_ids: IndiaGovernmentIds
    bank_details: IndiaBankDetails


# Canada

class SinDocument(_FormModel):
    sin_number: NonEmptyStr
    file: PdfFileAsset


class CanadaGovernmentIds(_FormModel):
    sin: SinDocument
    passport: Optional[PassportDocument] = None
    pr_card: Optional[OptionalTwoSidedDocument] = None
    work_permit: Optional[SingleFileDocument] = None
    drivers_license: Optional[DriversLicenseDocument] = None


class CanadaBankDetails(_FormModel):
    bank_name: NonEmptyStr
    institution_number: NonEmptyStr
    transit_number: NonEmptyStr
    account_number: NonEmptyStr
    account_holder_name: NonEmptyStr
    direct_deposit_doc: Optional[SingleFileDocument] = None


class CanadaOnboardingFormData(_CommonFormData):
    government_ids: CanadaGovernmentIds
    bank_details: CanadaBankDetails


# USA

class SsnDocument(_FormModel):
    ssn_number: NonEmptyStr
    file: PdfFileAsset


class UsGovernmentIds(_FormModel):
    ssn: SsnDocument
    passport: Optional[PassportDocument] = None
    green_card: Optional[OptionalTwoSidedDocument] = None
    work_permit: Optional[SingleFileDocument] = None
    drivers_license: Optional[DriversLicenseDocument] = None


class UsBankDetails(_FormModel):
    bank_name: NonEmptyStr
    routing_number: NonEmptyStr
    account_number: NonEmptyStr
    account_holder_name: NonEmptyStr
    account_type: AccountType
    void_cheque_or_deposit_slip: Optional[SingleFileDocument] = None


class UsOnboardingFormData(_CommonFormData):
    government_ids: UsGovernmentIds
    bank_details: UsBankDetails


FORM_MODELS: dict[Subsidiary, type[_CommonFormData]] = {
    Subsidiary.INDIA: IndiaOnboardingFormData,
    Subsidiary.CANADA: CanadaOnboardingFormData,
    Subsidiary.USA: UsOnboardingFormData,
}


def form_model_for(subsidiary: Subsidiary) -> type[_CommonFormData]:
    return FORM_MODELS[subsidiary]


def with_identity(form_data: dict[str, Any], first_name: str, last_name: str, email: str) -> dict[str, Any]:
    """Force personal_info identity fields to the values stored on the record."""
    data = dict(form_data)
    personal_info = dict(data.get("personal_info") or {})
    personal_info.update(first_name=first_name, last_name=last_name, email=email)
    data["personal_info"] = personal_info
    return data
