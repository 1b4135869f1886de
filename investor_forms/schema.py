"""
Form schema documents: pages -> sections -> field descriptors.

Schemas are declared once per form type as frozen dataclasses and treated
as read-only configuration. They drive page partitioning (which fields a
page validates and saves), shape checking of snapshot values and the
parent/follow-up relationships of Yes/No questions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


class FieldType(str, Enum):
    """Closed set of field type tags."""
    TEXT = 'text'
    DATE = 'date'
    CURRENCY = 'currency'
    MULTICHECK = 'multicheck'
    SIGNATURE = 'signature'
    RANGE_CURRENCY = 'range-currency'
    CONDITIONAL_YES_NO = 'conditional-yes-no'
    GROUP = 'group'
    CONTENT = 'content'
    CHECKBOX = 'checkbox'
    SELECT = 'select'


# Types that hold no value of their own
CONTAINER_TYPES = (FieldType.GROUP, FieldType.CONTENT)

YES_NO_OPTIONS = ('Yes', 'No')


@dataclass(frozen=True)
class FieldDescriptor:
    """A single field, or a group/conditional container with nested sub-fields."""
    id: str
    type: FieldType
    label: str = ''
    options: Tuple[str, ...] = ()
    sub_fields: Tuple['FieldDescriptor', ...] = ()
    text: str = ''  # Body of read-only content blocks

    @property
    def holds_value(self) -> bool:
        return self.type not in CONTAINER_TYPES

    def walk(self) -> Iterator['FieldDescriptor']:
        """Yield this descriptor and every nested descriptor, depth first."""
        yield self
        for sub_field in self.sub_fields:
            yield from sub_field.walk()


@dataclass(frozen=True)
class Section:
    """A titled group of fields rendered on one page."""
    section_id: str
    title: str
    page: int
    fields: Tuple[FieldDescriptor, ...] = ()


@dataclass(frozen=True)
class FormSchema:
    """Static description of a form: its sections and the pages they belong to."""
    form_id: str
    title: str
    sections: Tuple[Section, ...] = ()
    _index: Dict[str, Tuple[FieldDescriptor, int]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        index = {}
        for section in self.sections:
            for top in section.fields:
                for descriptor in top.walk():
                    if descriptor.id in index:
                        raise ValueError(f'Duplicate field id in {self.form_id}: {descriptor.id}')
                    index[descriptor.id] = (descriptor, section.page)
        self._index.update(index)

    @property
    def pages(self) -> Tuple[int, ...]:
        return tuple(sorted({section.page for section in self.sections}))

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    @property
    def is_multi_page(self) -> bool:
        return self.total_pages > 1

    def sections_for_page(self, page: int) -> List[Section]:
        return [section for section in self.sections if section.page == page]

    def descriptor(self, field_id: str) -> Optional[FieldDescriptor]:
        entry = self._index.get(field_id)
        return entry[0] if entry else None

    def page_of(self, field_id: str) -> Optional[int]:
        entry = self._index.get(field_id)
        return entry[1] if entry else None

    def field_ids(self, page: Optional[int] = None) -> List[str]:
        """
        Value-holding field ids in declaration order.

        Args:
            page: Restrict to one page; None returns the whole form

        Returns:
            List of field ids (groups and content blocks excluded)
        """
        return [
            field_id for field_id, (descriptor, field_page) in self._index.items()
            if descriptor.holds_value and (page is None or field_page == page)
        ]

    def follow_up_parents(self) -> Dict[str, str]:
        """Map each follow-up field id to its conditional Yes/No parent."""
        parents = {}
        for descriptor, _ in self._index.values():
            if descriptor.type == FieldType.CONDITIONAL_YES_NO:
                for sub_field in descriptor.sub_fields:
                    for nested in sub_field.walk():
                        if nested.holds_value:
                            parents[nested.id] = descriptor.id
        return parents

    def first_page_with_errors(self, errors: Dict[str, str]) -> Optional[int]:
        """Lowest page holding a field that has an error."""
        pages = [self.page_of(field_id) for field_id in errors]
        pages = [page for page in pages if page is not None]
        return min(pages) if pages else None


def text(field_id: str, label: str = '') -> FieldDescriptor:
    return FieldDescriptor(field_id, FieldType.TEXT, label)


def date_field(field_id: str, label: str = '') -> FieldDescriptor:
    return FieldDescriptor(field_id, FieldType.DATE, label)


def currency(field_id: str, label: str = '') -> FieldDescriptor:
    return FieldDescriptor(field_id, FieldType.CURRENCY, label)


def multicheck(field_id: str, label: str, options: Tuple[str, ...]) -> FieldDescriptor:
    return FieldDescriptor(field_id, FieldType.MULTICHECK, label, options=options)


def checkbox(field_id: str, label: str = '') -> FieldDescriptor:
    return FieldDescriptor(field_id, FieldType.CHECKBOX, label)


def select(field_id: str, label: str, options: Tuple[str, ...]) -> FieldDescriptor:
    return FieldDescriptor(field_id, FieldType.SELECT, label, options=options)


def yes_no(field_id: str, label: str, *follow_ups: FieldDescriptor) -> FieldDescriptor:
    """A Yes/No question whose follow-up fields apply when answered 'Yes'."""
    return FieldDescriptor(
        field_id, FieldType.CONDITIONAL_YES_NO, label,
        options=YES_NO_OPTIONS, sub_fields=tuple(follow_ups)
    )


def group(field_id: str, label: str, *sub_fields: FieldDescriptor) -> FieldDescriptor:
    return FieldDescriptor(field_id, FieldType.GROUP, label, sub_fields=tuple(sub_fields))


def content(field_id: str, body: str) -> FieldDescriptor:
    return FieldDescriptor(field_id, FieldType.CONTENT, text=body)


def signature_block(prefix: str, label: str) -> FieldDescriptor:
    """Signature, printed name and date for one signing role."""
    return group(
        f'{prefix}_signature_block', label,
        FieldDescriptor(f'{prefix}_signature', FieldType.SIGNATURE, 'Signature'),
        text(f'{prefix}_printed_name', 'Printed Name'),
        date_field(f'{prefix}_date', 'Date'),
    )


def address_block(prefix: str, label: str) -> FieldDescriptor:
    """Street, city, state/province, postal code and country under one prefix."""
    return group(
        f'{prefix}_address', label,
        text(f'{prefix}_address_line', 'Address'),
        text(f'{prefix}_city', 'City'),
        text(f'{prefix}_state_province', 'State/Province'),
        text(f'{prefix}_zip_postal_code', 'ZIP/Postal Code'),
        text(f'{prefix}_country', 'Country'),
    )
