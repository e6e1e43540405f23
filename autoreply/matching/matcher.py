"""Pure matching of message text against a single keyword rule."""

from typing import Optional

from autoreply.domain.models import KeywordRule, MatchStrategy

from .models import MatchKind, MatchOptions, MatchResult
from .utils import best_token_similarity, contains_word, normalize_text, tokenize

DEFAULT_OPTIONS = MatchOptions()


def match(
    text: str, rule: KeywordRule, options: Optional[MatchOptions] = None
) -> Optional[MatchResult]:
    """Match text against a rule's keyword and synonyms.

    Terms are tried in declaration order (keyword first). For each term the
    rule's strategy is checked first; the first term it satisfies wins with
    confidence 1.0. When no strategy check succeeds for a term and fuzzy
    matching is enabled, the best-scoring whitespace token is compared
    against fuzzy_threshold before moving on to the next term.

    Args:
        text: Message text
        rule: Rule to evaluate
        options: Matching options (defaults to MatchOptions())

    Returns:
        MatchResult, or None when no term matches
    """
    options = options or DEFAULT_OPTIONS
    text = text.strip() if text else ""
    if not text:
        return None

    terms = [term for term in rule.all_terms if term]
    if not terms:
        return None

    case_sensitive = rule.settings.case_sensitive
    search_text = normalize_text(text, case_sensitive)
    tokens = None

    for index, raw_term in enumerate(terms):
        term = normalize_text(raw_term, case_sensitive)
        is_keyword = index == 0

        if _strategy_matches(search_text, term, rule.settings.match_strategy, options):
            return MatchResult(
                rule=rule,
                matched_term=raw_term,
                kind=MatchKind.KEYWORD if is_keyword else MatchKind.SYNONYM,
                confidence=1.0,
                priority=rule.priority,
            )

        if options.enable_fuzzy_matching:
            if tokens is None:
                tokens = tokenize(search_text)
            score = best_token_similarity(tokens, term)
            if score > 0 and score >= options.fuzzy_threshold:
                return MatchResult(
                    rule=rule,
                    matched_term=raw_term,
                    kind=MatchKind.FUZZY_KEYWORD if is_keyword else MatchKind.FUZZY_SYNONYM,
                    confidence=score,
                    priority=rule.priority,
                )

    return None


def _strategy_matches(
    text: str, term: str, strategy: MatchStrategy, options: MatchOptions
) -> bool:
    if strategy == MatchStrategy.EXACT:
        return text == term
    if strategy == MatchStrategy.STARTS_WITH:
        return text.startswith(term)
    if strategy == MatchStrategy.ENDS_WITH:
        return text.endswith(term)
    if options.enable_word_boundary:
        return contains_word(text, term)
    return term in text
