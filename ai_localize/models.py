"""
Data model for Xcode String Catalog (.xcstrings) files.

The classes mirror the JSON layout closely. Fields the pipeline does not
interpret (variations, extraction metadata, unknown keys added by newer Xcode
versions) are kept in ``extra`` or in their own attribute so that a catalog
survives a load/merge/save cycle without losing data.
"""
import copy
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# key -> language -> translated text
TranslationResults = Dict[str, Dict[str, str]]


class TranslationState(enum.Enum):
    """Review state of a string unit."""
    NEW = "new"
    NEEDS_REVIEW = "needs_review"
    TRANSLATED = "translated"
    STALE = "stale"


@dataclass
class StringUnit:
    value: str
    state: Optional[TranslationState] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StringUnit":
        extra = {k: copy.deepcopy(v) for k, v in data.items() if k not in ('value', 'state')}
        state = data.get('state')
        return cls(
            value=data.get('value', ''),
            state=TranslationState(state) if state is not None else None,
            extra=extra
        )

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.extra)
        if self.state is not None:
            data['state'] = self.state.value
        data['value'] = self.value
        return data


@dataclass
class Localization:
    """One language's translation of an entry."""
    string_unit: Optional[StringUnit] = None
    variations: Optional[Dict[str, Any]] = None
    extraction_state: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def state(self) -> Optional[TranslationState]:
        return self.string_unit.state if self.string_unit else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Localization":
        known = ('stringUnit', 'variations', 'extractionState')
        unit = data.get('stringUnit')
        return cls(
            string_unit=StringUnit.from_dict(unit) if unit is not None else None,
            variations=copy.deepcopy(data.get('variations')),
            extraction_state=data.get('extractionState'),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in known}
        )

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.extra)
        if self.extraction_state is not None:
            data['extractionState'] = self.extraction_state
        if self.string_unit is not None:
            data['stringUnit'] = self.string_unit.to_dict()
        if self.variations is not None:
            data['variations'] = copy.deepcopy(self.variations)
        return data


@dataclass
class Entry:
    """A catalog key with its comment and per-language localizations."""
    comment: Optional[str] = None
    extraction_state: Optional[str] = None
    localizations: Optional[Dict[str, Localization]] = None
    should_translate: bool = True
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_bare(self) -> bool:
        """True when the entry has no localizations at all."""
        return not self.localizations

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Entry":
        # shouldTranslate is also kept in extra
        known = ('comment', 'extractionState', 'localizations')
        localizations = data.get('localizations')
        return cls(
            comment=data.get('comment'),
            extraction_state=data.get('extractionState'),
            localizations=(
                {lang: Localization.from_dict(loc) for lang, loc in localizations.items()}
                if localizations is not None else None
            ),
            should_translate=data.get('shouldTranslate', True),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in known}
        )

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.extra)
        if self.comment is not None:
            data['comment'] = self.comment
        if self.extraction_state is not None:
            data['extractionState'] = self.extraction_state
        if self.localizations is not None:
            data['localizations'] = {lang: loc.to_dict() for lang, loc in self.localizations.items()}
        if 'shouldTranslate' in data or not self.should_translate:
            data['shouldTranslate'] = self.should_translate
        return data


@dataclass
class Catalog:
    """The whole string catalog: source language, version and entries."""
    source_language: str
    entries: Dict[str, Entry] = field(default_factory=dict)
    version: str = "1.0"
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Catalog":
        known = ('sourceLanguage', 'strings', 'version')
        return cls(
            source_language=data['sourceLanguage'],
            entries={key: Entry.from_dict(entry) for key, entry in data.get('strings', {}).items()},
            version=data.get('version', '1.0'),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in known}
        )

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.extra)
        data['sourceLanguage'] = self.source_language
        data['strings'] = {key: entry.to_dict() for key, entry in self.entries.items()}
        data['version'] = self.version
        return data


@dataclass(frozen=True)
class TranslationTask:
    """One unit of translation work: a single key into a single language."""
    key: str
    source_text: str
    target_language: str
    comment: Optional[str] = None


@dataclass(frozen=True)
class TranslationResult:
    key: str
    target_language: str
    text: str
