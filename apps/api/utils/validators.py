"""Input validation for resident profiles, officials and settings.

Validation errors are raised before anything is sent to the database or to
storage. Messages follow the wording residents see in the profiling form,
e.g. "Household form is incomplete: first name is required".
"""
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

HOUSEHOLD_REQUIRED_FIELDS = [
    'firstName',
    'lastName',
    'address',
    'region',
    'province',
    'city',
    'barangay',
    'zipCode',
    'dob',
    'age',
    'gender',
    'civilStatus',
    'phoneNumber',
    'idType',
    'idNo',
    'employmentType',
    'education',
    'pwdStatus',
]

SPOUSE_REQUIRED_FIELDS = [
    'firstName',
    'lastName',
    'middleName',
    'address',
    'region',
    'province',
    'city',
    'barangay',
    'dob',
    'age',
    'gender',
    'civilStatus',
    'phoneNumber',
    'idType',
    'idNo',
    'education',
    'employmentType',
    'pwdStatus',
]

MEMBER_REQUIRED_FIELDS = [
    'firstName',
    'lastName',
    'relation',
    'gender',
    'age',
    'dob',
    'education',
    'pwdStatus',
]

MEMBER_ADDRESS_FIELDS = ['address', 'region', 'province', 'city', 'barangay', 'zipCode']

CENSUS_REQUIRED_FIELDS = [
    'ownsHouse',
    'isRenting',
    'yearsInBarangay',
    'isRegisteredVoter',
    'hasOwnComfortRoom',
    'hasOwnWaterSupply',
    'hasOwnElectricity',
]

CHILD_RELATIONS = {'son', 'daughter'}

# Fields kept verbatim by normalize_profile_text
URL_FIELDS = {'image_url', 'valid_id_url', 'zone_cert_url'}
DROPDOWN_FIELDS = {
    'region',
    'province',
    'city',
    'barangay',
    'zone',
    'extension',
    'gender',
    'customGender',
    'civilStatus',
    'idType',
    'employmentType',
    'education',
    'relation',
    'isLivingWithParents',
    'ownsHouse',
    'isRenting',
    'isRegisteredVoter',
    'hasOwnComfortRoom',
    'hasOwnWaterSupply',
    'hasOwnElectricity',
    'pwdStatus',
    'disabilityType',
}
NON_TEXT_FIELDS = {'age', 'childrenCount', 'numberOfHouseholdMembers', 'hasZoneCertificate'}


class ValidationError(Exception):
    """Raised when submitted data fails validation."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message

    def to_dict(self):
        return {'error': self.message, 'field': self.field}


def humanize_field(field: str) -> str:
    """'voterPrecinctNo' -> 'voter precinct no'"""
    return re.sub(r'([A-Z])', r' \1', field).lower().replace('_', ' ').strip()


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def is_yes(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in ('yes', 'true', '1')


def validate_required_fields(data: Dict[str, Any], fields: Iterable[str], section: str) -> None:
    """Raise for the first missing field, in form order."""
    for field in fields:
        if is_blank(data.get(field)):
            raise ValidationError(field, f"{section} is incomplete: {humanize_field(field)} is required")


def validate_age(value: Any, field: str = 'age', section: str = 'Household form') -> int:
    """Ages are submitted as strings; they must be whole numbers."""
    try:
        age = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(field, f"{section} is invalid: age must be a whole number")
    if age < 0 or age > 150:
        raise ValidationError(field, f"{section} is invalid: age must be between 0 and 150")
    return age


def parse_count(value: Any, field: str) -> int:
    if value in (None, ''):
        return 0
    try:
        count = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(field, f"{humanize_field(field).capitalize()} must be a whole number")
    if count < 0:
        raise ValidationError(field, f"{humanize_field(field).capitalize()} cannot be negative")
    return count


def validate_email(email: str) -> str:
    """Validate and normalize an email address."""
    value = (email or '').strip()
    if not EMAIL_RE.match(value):
        raise ValidationError('email', 'Please enter a valid email address')
    return value.lower()


def _check_path_prefix(path: Optional[str], field: str, path_prefix: Optional[str]) -> None:
    if path and path_prefix and not str(path).startswith(path_prefix):
        raise ValidationError(field, f"{humanize_field(field).capitalize()} does not belong to this account")


def validate_household(
    household: Dict[str, Any],
    home_codes: Optional[Dict[str, str]] = None,
    path_prefix: Optional[str] = None,
) -> Dict[str, Any]:
    if not isinstance(household, dict):
        raise ValidationError('household', 'Household form is required')

    validate_required_fields(household, HOUSEHOLD_REQUIRED_FIELDS, 'Household form')
    validate_age(household.get('age'))

    if home_codes and all(
        str(household.get(key) or '') == code for key, code in home_codes.items()
    ) and is_blank(household.get('zone')):
        raise ValidationError('zone', 'Household form is incomplete: Zone is required for Barangay Bonbon')

    if is_yes(household.get('pwdStatus')) and is_blank(household.get('disabilityType')):
        raise ValidationError('disabilityType', 'Household form is incomplete: Type of disability is required')
    if is_blank(household.get('image_url')):
        raise ValidationError('image_url', 'Household form is incomplete: Image is required')
    if is_blank(household.get('valid_id_url')):
        raise ValidationError('valid_id_url', 'Household form is incomplete: Valid ID is required')
    if is_yes(household.get('hasZoneCertificate')) and is_blank(household.get('zone_cert_url')):
        raise ValidationError('zone_cert_url', 'Household form is incomplete: Zone certificate is required')

    for field in URL_FIELDS:
        _check_path_prefix(household.get(field), field, path_prefix)

    return household


def validate_spouse(
    household: Dict[str, Any],
    spouse: Optional[Dict[str, Any]],
    path_prefix: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Spouse data is kept only for married household heads, and then it is mandatory."""
    if str(household.get('civilStatus') or '').strip().lower() != 'married':
        return None

    if not isinstance(spouse, dict) or not spouse:
        raise ValidationError('spouse', 'Spouse information is required for married status')

    spouse = dict(spouse)
    spouse['civilStatus'] = 'Married'
    validate_required_fields(spouse, SPOUSE_REQUIRED_FIELDS, 'Spouse form')
    validate_age(spouse.get('age'), section='Spouse form')
    if is_yes(spouse.get('pwdStatus')) and is_blank(spouse.get('disabilityType')):
        raise ValidationError('disabilityType', 'Spouse form is incomplete: Type of disability is required')
    if is_blank(spouse.get('valid_id_url')):
        raise ValidationError('valid_id_url', 'Spouse form is incomplete: Valid ID is required')
    _check_path_prefix(spouse.get('valid_id_url'), 'valid_id_url', path_prefix)
    return spouse


def is_child_relation(member: Dict[str, Any]) -> bool:
    return str(member.get('relation') or '').strip().lower() in CHILD_RELATIONS


def validate_household_composition(
    members: Any,
    children_count: int,
    number_of_household_members: int,
) -> List[Dict[str, Any]]:
    """
    Validate household members and the count invariant: Son/Daughter entries
    equal children_count and all other entries equal number_of_household_members.
    """
    if members in (None, ''):
        members = []
    if not isinstance(members, list):
        raise ValidationError('householdComposition', 'Household composition must be a list of members')

    section = 'Household composition'
    for index, member in enumerate(members, start=1):
        if not isinstance(member, dict):
            raise ValidationError('householdComposition', f"{section} is invalid: member {index} is malformed")
        required = list(MEMBER_REQUIRED_FIELDS)
        if is_child_relation(member):
            required.append('isLivingWithParents')
            if str(member.get('isLivingWithParents') or '').strip().lower() == 'no':
                required.extend(MEMBER_ADDRESS_FIELDS)
        if is_yes(member.get('pwdStatus')):
            required.append('disabilityType')
        for field in required:
            if is_blank(member.get(field)):
                raise ValidationError(
                    field,
                    f"{section} is incomplete: {humanize_field(field)} is required for member {index}",
                )
        validate_age(member.get('age'), section=f"{section} member {index}")

    children = sum(1 for member in members if is_child_relation(member))
    others = len(members) - children
    if children != children_count:
        raise ValidationError(
            'childrenCount',
            f"{section} lists {children} son/daughter entries but children count is {children_count}",
        )
    if others != number_of_household_members:
        raise ValidationError(
            'numberOfHouseholdMembers',
            f"{section} lists {others} other members but number of household members is {number_of_household_members}",
        )
    return members


def validate_census(census: Any) -> Dict[str, Any]:
    if not isinstance(census, dict):
        raise ValidationError('census', 'Census form is required')

    validate_required_fields(census, CENSUS_REQUIRED_FIELDS, 'Census form')

    if is_yes(census.get('ownsHouse')) and is_yes(census.get('isRenting')):
        raise ValidationError('isRenting', 'Census form is invalid: a household cannot both own and rent the house')

    census = dict(census)
    if is_yes(census.get('isRegisteredVoter')):
        if is_blank(census.get('voterPrecinctNo')):
            raise ValidationError('voterPrecinctNo', "Census form is incomplete: Voter's precinct number is required")
    else:
        census.pop('voterPrecinctNo', None)
    return census


def normalize_profile_text(record: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Uppercase free-text answers; URLs, dropdown values and numbers are kept as-is."""
    if not record:
        return record
    normalized = {}
    for key, value in record.items():
        if key in URL_FIELDS or key in DROPDOWN_FIELDS or key in NON_TEXT_FIELDS:
            normalized[key] = value
        elif isinstance(value, str):
            normalized[key] = value.upper()
        else:
            normalized[key] = value
    return normalized


def validate_resident_profile(
    payload: Dict[str, Any],
    home_codes: Optional[Dict[str, str]] = None,
    path_prefix: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Validate a full profile submission and return the values to persist.

    Args:
        payload: Submitted JSON (household, spouse, householdComposition,
            census, childrenCount, numberOfHouseholdMembers)
        home_codes: PSGC codes (region/province/city/barangay) for which a
            zone is mandatory
        path_prefix: Required prefix of every uploaded file path

    Returns:
        Dict keyed by resident column name
    """
    if not isinstance(payload, dict):
        raise ValidationError('profile', 'Profile data is required')

    household = validate_household(payload.get('household'), home_codes, path_prefix)
    spouse = validate_spouse(household, payload.get('spouse'), path_prefix)
    children_count = parse_count(payload.get('childrenCount'), 'childrenCount')
    number_of_household_members = parse_count(
        payload.get('numberOfHouseholdMembers'), 'numberOfHouseholdMembers'
    )
    members = validate_household_composition(
        payload.get('householdComposition'), children_count, number_of_household_members
    )
    census = validate_census(payload.get('census'))

    return {
        'household': normalize_profile_text(household),
        'spouse': normalize_profile_text(spouse),
        'household_composition': [normalize_profile_text(member) for member in members],
        'census': normalize_profile_text(census),
        'children_count': children_count,
        'number_of_household_members': number_of_household_members,
        'image_url': household.get('image_url'),
        'valid_id_url': household.get('valid_id_url'),
        'zone_cert_url': household.get('zone_cert_url'),
        'spouse_valid_id_url': (spouse or {}).get('valid_id_url'),
    }
