"""Load posts and keyword rules from a YAML seed file.

Expected layout::

    posts:
      - resource_id: post-1
        external_post_id: "17890000000000001"
        account_id: acct-1
        automation_enabled: true
        reply_mode: BOTH
        rules:
          - keyword: harga
            synonyms: [price]
            response:
              dm_message: "Hi {{ username }}, the price is 100k"
              fallback_comment: "Check your DMs!"
              product_link: https://shop.example.com/p/1
            settings:
              priority: 9
"""

import uuid
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml
from pydantic import ValidationError

from autoreply.domain.models import KeywordRule, PostRecord
from autoreply.logging import get_logger

from .database import get_session
from .exceptions import PersistenceError
from .repositories import PostRepository, RuleRepository

logger = get_logger(__name__, component="database")


def seed_from_file(path: Path) -> Tuple[int, int]:
    """Upsert every post and rule in a seed file.

    Rules without a rule_id get a generated one; resource_id and account_id
    default to the enclosing post's.

    Args:
        path: YAML seed file

    Returns:
        Tuple of (posts upserted, rules upserted)

    Raises:
        PersistenceError: If the file is unreadable or holds invalid records
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise PersistenceError(f"Failed to read seed file {path}: {e}") from e

    return seed_from_dict(data)


def seed_from_dict(data: Dict[str, Any]) -> Tuple[int, int]:
    """Upsert posts and rules from an already parsed seed mapping."""
    if not isinstance(data, dict) or not isinstance(data.get("posts", []), list):
        raise PersistenceError("Seed data must be a mapping with a 'posts' list")

    post_count = 0
    rule_count = 0

    with get_session() as session:
        posts = PostRepository(session)
        rules = RuleRepository(session)

        for entry in data.get("posts", []):
            entry = dict(entry or {})
            rule_entries = entry.pop("rules", []) or []

            try:
                post = PostRecord.model_validate(entry)
            except ValidationError as e:
                raise PersistenceError(f"Invalid post in seed data: {e}") from e
            posts.upsert(post)
            post_count += 1

            for rule_entry in rule_entries:
                values = {
                    "rule_id": f"rule_{uuid.uuid4().hex[:12]}",
                    "resource_id": post.resource_id,
                    "account_id": post.account_id,
                    **(rule_entry or {}),
                }
                try:
                    rule = KeywordRule.model_validate(values)
                except ValidationError as e:
                    raise PersistenceError(
                        f"Invalid rule for post {post.resource_id} in seed data: {e}"
                    ) from e
                rules.upsert(rule)
                rule_count += 1

    logger.info(
        f"Seeded {post_count} posts and {rule_count} rules",
        extra={"event": "database.seeded", "posts": post_count, "rules": rule_count},
    )
    return post_count, rule_count
