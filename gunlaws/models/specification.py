"""
Model specification module.

Expands one base formula into the table03/table04 specification matrix:
five outcomes, each fit with state and year fixed effects, once without and
once with the SYG x RTC interaction. Specifications are plain records; the
regression engine builds design matrices from them directly.

Formula text is only accepted as input (configuration files, notebooks) and
is parsed into records by ``parse_formula``.
"""

import re
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union
from dataclasses import dataclass

from .errors import SpecificationError
from ..utils.config import ColumnConfig, DEFAULT_OUTCOMES
from ..utils.logging import get_logger

logger = get_logger(__name__)


class PanelLevel(str, Enum):
    """Granularity of the panel a specification is fit on."""
    JURISDICTION = 'jurisdiction'
    SUB_JURISDICTION = 'sub_jurisdiction'


@dataclass(frozen=True)
class Term:
    """
    A right-hand-side term.

    ``ref`` set means a categorical indicator term, ``i(name, ref=...)``:
    one dummy per level of ``name`` except the reference level.
    """
    name: str
    ref: Optional[Union[int, float, str]] = None

    @property
    def is_indicator(self) -> bool:
        return self.ref is not None

    def render(self) -> str:
        if self.is_indicator:
            return f"i({self.name}, ref = {self.ref})"
        return self.name


@dataclass(frozen=True)
class BaseFormula:
    """Outcome placeholder plus the shared regressors."""
    outcome: str
    terms: Tuple[Term, ...]
    fixed_effects: Tuple[str, ...] = ()

    def render(self) -> str:
        rhs = " + ".join(t.render() for t in self.terms)
        text = f"{self.outcome} ~ {rhs}"
        if self.fixed_effects:
            text += " | " + " + ".join(self.fixed_effects)
        return text


@dataclass(frozen=True)
class Specification:
    """
    One model to fit.

    The panel level decides both the dataset and the clustering: state-level
    models cluster by state, city-level models by state and city.
    """
    table: str
    model: int
    outcome: str
    terms: Tuple[Term, ...]
    fixed_effects: Tuple[str, ...]
    cluster: Tuple[str, ...]
    level: PanelLevel
    interaction: bool = False

    def __post_init__(self):
        expected = 2 if self.level == PanelLevel.SUB_JURISDICTION else 1
        if len(self.cluster) != expected:
            raise SpecificationError(
                f"{self.level.value} specification needs {expected}-way "
                f"clustering, got {self.cluster}"
            )
        if not self.terms:
            raise SpecificationError(f"{self.table} model {self.model} has no regressors")

    @property
    def regressors(self) -> List[str]:
        return [t.name for t in self.terms]

    @property
    def required_columns(self) -> List[str]:
        columns = [self.outcome] + self.regressors
        columns += list(self.fixed_effects) + list(self.cluster)
        return list(dict.fromkeys(columns))

    def formula(self) -> str:
        """fixest-style formula text, for logs and tables."""
        rhs = " + ".join(t.render() for t in self.terms)
        text = f"{self.outcome} ~ {rhs}"
        if self.fixed_effects:
            text += " | " + " + ".join(self.fixed_effects)
        return text

    def cluster_formula(self) -> str:
        return "~" + " + ".join(self.cluster)


_IDENTIFIER = re.compile(r"^[A-Za-z_.][A-Za-z0-9_.]*$")
_INDICATOR = re.compile(
    r"^i\(\s*([A-Za-z_.][A-Za-z0-9_.]*)\s*(?:,\s*ref\s*=\s*([^,()]+?))?\s*\)$"
)


def normalize_formula(text: str) -> str:
    """
    Remove cosmetic grouping parentheses from formula text.

    A parenthesis pair is structural when the opening parenthesis directly
    follows a name, i.e. it opens a call such as ``i(x, ref = -1)``. Every
    other pair only groups terms and is dropped. Whitespace is collapsed.

    Raises
    ------
    SpecificationError
        If the parentheses are unbalanced
    """
    out = []
    stack = []

    for char in text:
        if char == '(':
            previous = "".join(out).rstrip()
            structural = bool(previous) and (previous[-1].isalnum() or previous[-1] in '_.')
            stack.append(structural)
            if structural:
                out.append(char)
        elif char == ')':
            if not stack:
                raise SpecificationError(f"Unbalanced ')' in formula: {text!r}")
            if stack.pop():
                out.append(char)
        else:
            out.append(char)

    if stack:
        raise SpecificationError(f"Unbalanced '(' in formula: {text!r}")

    return re.sub(r"\s+", " ", "".join(out)).strip()


def _split_top_level(text: str, sep: str) -> List[str]:
    parts, depth, current = [], 0, []
    for char in text:
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
        if char == sep and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    parts.append("".join(current).strip())
    return parts


def _parse_ref(raw: str) -> Union[int, float, str]:
    raw = raw.strip().strip('"\'')
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw


def _parse_term(text: str) -> Term:
    if _IDENTIFIER.match(text):
        return Term(text)

    match = _INDICATOR.match(text)
    if match:
        name, ref = match.groups()
        if ref is None:
            raise SpecificationError(f"Indicator term needs a reference level: {text!r}")
        return Term(name, ref=_parse_ref(ref))

    raise SpecificationError(f"Unsupported formula term: {text!r}")


def parse_formula(text: str) -> BaseFormula:
    """
    Parse ``outcome ~ a + b + i(c, ref = -1) [| fe1 + fe2]``.

    Parameters
    ----------
    text : str
        Formula text

    Returns
    -------
    BaseFormula
        Parsed outcome, terms and optional fixed effects
    """
    text = normalize_formula(text)

    if text.count('~') != 1:
        raise SpecificationError(f"Formula needs exactly one '~': {text!r}")

    outcome, rhs = (part.strip() for part in text.split('~'))
    if not _IDENTIFIER.match(outcome):
        raise SpecificationError(f"Invalid outcome in formula: {outcome!r}")

    sections = _split_top_level(rhs, '|')
    if len(sections) > 2:
        raise SpecificationError(f"Formula has more than one '|': {text!r}")

    terms = tuple(_parse_term(t) for t in _split_top_level(sections[0], '+') if t)
    if not terms:
        raise SpecificationError(f"Formula has no regressors: {text!r}")

    fixed_effects = ()
    if len(sections) == 2:
        fixed_effects = tuple(f for f in _split_top_level(sections[1], '+') if f)
        for fe in fixed_effects:
            if not _IDENTIFIER.match(fe):
                raise SpecificationError(f"Invalid fixed effect: {fe!r}")

    return BaseFormula(outcome=outcome, terms=terms, fixed_effects=fixed_effects)


def create_specifications(
    base: Union[str, BaseFormula],
    outcomes: Sequence[Tuple[str, str]] = None,
    columns: ColumnConfig = None,
    table_names: Tuple[str, str] = ('table03', 'table04')
) -> Dict[str, List[Specification]]:
    """
    Create the specification matrix for both tables.

    Parameters
    ----------
    base : str or BaseFormula
        Base formula; its outcome is a placeholder replaced per model
    outcomes : list of (outcome, level)
        Outcomes in model order with their panel level
    columns : ColumnConfig, optional
        Column names (fixed effects, clustering, interaction)
    table_names : tuple
        Names of the fixed-effects-only table and the interaction table

    Returns
    -------
    dict
        table name -> list of Specification, models numbered from 1
    """
    if isinstance(base, str):
        base = parse_formula(base)
    if outcomes is None:
        outcomes = DEFAULT_OUTCOMES
    if columns is None:
        columns = ColumnConfig()

    outcomes = list(outcomes)
    if not outcomes:
        raise SpecificationError("No outcome variables to build specifications for")
    if not base.terms:
        raise SpecificationError("Base formula has no regressors")

    fixed_effects = base.fixed_effects or (columns.jurisdiction, columns.time)

    # Table B appends the interaction after the base regressors
    interaction = Term(columns.interaction)
    interaction_terms = base.terms
    if interaction not in base.terms:
        interaction_terms = base.terms + (interaction,)

    table_a, table_b = table_names
    specifications = {table_a: [], table_b: []}

    for index, (outcome, level) in enumerate(outcomes, start=1):
        level = PanelLevel(level)
        if level == PanelLevel.SUB_JURISDICTION:
            cluster = (columns.jurisdiction, columns.sub_jurisdiction)
        else:
            cluster = (columns.jurisdiction,)

        for table, terms, with_interaction in (
            (table_a, base.terms, False),
            (table_b, interaction_terms, True),
        ):
            specifications[table].append(Specification(
                table=table,
                model=index,
                outcome=outcome,
                terms=terms,
                fixed_effects=tuple(fixed_effects),
                cluster=cluster,
                level=level,
                interaction=with_interaction,
            ))

    n_specs = sum(len(v) for v in specifications.values())
    logger.debug(f"Created {n_specs} specifications from '{base.render()}'")

    return specifications
