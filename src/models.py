"""Data classes for family tree entities."""

from dataclasses import dataclass, field
from enum import Enum


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: str | None) -> "Gender | None":
        """Map free-form input ('m', 'female', 'F', '') onto a Gender or None."""
        if not value:
            return None
        v = value.strip().lower()
        if v in ("m", "male"):
            return cls.MALE
        if v in ("f", "female"):
            return cls.FEMALE
        if v in ("o", "other", "u", "x"):
            return cls.OTHER
        return None


class RelationCode(str, Enum):
    SPOUSE = "SPOUSE"
    FATHER = "FATHER"
    MOTHER = "MOTHER"
    CHILD = "CHILD"


PARENT_CODES = (RelationCode.FATHER.value, RelationCode.MOTHER.value)


@dataclass
class Member:
    id: int
    first_name: str
    last_name: str
    dob: str | None = None  # ISO format YYYY-MM-DD or None
    gender: Gender | None = None
    contact_number: str | None = None
    address: str | None = None
    native_place: str | None = None
    notes: str | None = None
    image_url: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def summary(self) -> "MemberSummary":
        return MemberSummary(
            id=self.id,
            first_name=self.first_name,
            last_name=self.last_name,
            gender=self.gender,
            dob=self.dob,
            image_url=self.image_url,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "dob": self.dob,
            "gender": self.gender.value if self.gender else None,
            "contactNumber": self.contact_number,
            "address": self.address,
            "nativePlace": self.native_place,
            "notes": self.notes,
            "imageUrl": self.image_url,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class MemberSummary:
    id: int
    first_name: str
    last_name: str
    gender: Gender | None = None
    dob: str | None = None
    image_url: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "gender": self.gender.value if self.gender else None,
            "dob": self.dob,
            "imageUrl": self.image_url,
        }


@dataclass
class RelationMaster:
    id: int
    code: str
    label: str
    is_spousal: bool = False
    is_parental: bool = False
    is_bidirectional: bool = False
    inverse_code: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "label": self.label,
            "isSpousal": self.is_spousal,
            "isParental": self.is_parental,
            "isBidirectional": self.is_bidirectional,
            "inverseCode": self.inverse_code,
        }


@dataclass
class RelationshipEdge:
    id: int
    from_member_id: int
    to_member_id: int
    relation_id: int
    relation_code: str  # denormalised from relation_master for lookups

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fromMemberId": self.from_member_id,
            "toMemberId": self.to_member_id,
            "relationId": self.relation_id,
            "relationCode": self.relation_code,
        }


@dataclass
class FamilyView:
    spouses: list[MemberSummary] = field(default_factory=list)
    children: list[MemberSummary] = field(default_factory=list)
    parents: list[MemberSummary] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "spouses": [m.to_dict() for m in self.spouses],
            "children": [m.to_dict() for m in self.children],
            "parents": [m.to_dict() for m in self.parents],
        }


@dataclass
class Page:
    data: list[dict]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit > 0 else 0

    def to_dict(self) -> dict:
        return {
            "data": self.data,
            "meta": {
                "total": self.total,
                "page": self.page,
                "limit": self.limit,
                "totalPages": self.total_pages,
            },
        }
