# -*- coding: UTF-8 -*-
"""Bbcode tags as a markdown-it inline rule.

Tags are found here, including their matching close tag, and each registered
rule only decides which tokens surround the contents. Unknown, disabled or
unclosed tags are left for the other inline rules and render as text.

"""

__all__ = ["TagInfo",
           "BBCodeRule",
           "BBCodeRuler",
           "parse_tag_token",
           "bbcode_plugin"]

import re
from bisect import bisect_left
from collections import namedtuple


TagInfo = namedtuple("TagInfo", "tag attrs")

_re_tag = re.compile(r'\[[^\[\]\n]*\]', re.UNICODE)
_re_tag_token = re.compile(r'^\[(\S*?)[\s=]["“]?(.*?)["”]?\]$', re.UNICODE|re.DOTALL)


def parse_tag_token(s):
    """Splits a tag in to its name, attribute and whether it is a close tag.

    s -- A single tag, e.g. '[color="red"]' or '[/color]'

    """
    m = _re_tag_token.match(s.lstrip())
    if m is None:
        name, attribs = s[1:-1], ''
    else:
        name, attribs = m.groups()
    if name.startswith('/'):
        return name.strip()[1:].lower(), attribs, True
    else:
        return name.strip().lower(), attribs, False


class BBCodeRule(object):

    def __init__(self, name, wrap, feature=None):
        """A tag registered with the ruler.

        name -- The name of the bbcode tag
        wrap -- Called with a TagInfo, returns the open and close tokens
        feature -- Name of the feature flag that enables the tag, or None for always

        """
        self.name = name
        self.wrap = wrap
        self.feature = feature
        escaped_name = re.escape(name)
        self._re_nested_tag = re.compile(r'\[(?:(/)%s|%s(?:[\s=][^\]]*)?)\]' % (escaped_name, escaped_name),
                                         re.IGNORECASE|re.UNICODE)

    def enabled(self, env):
        features = env.get("features")
        if self.feature is None or features is None:
            return True
        return bool(features.get(self.feature))

    def pair_tags(self, src):
        """Pairs the open and close tags of src in one pass.

        Returns the start offsets of the tags and, for each of them, the
        (start, end) of the close tag that balances an open tag ending just
        before it, or None where there is no such close tag.

        """
        matches = list(self._re_nested_tag.finditer(src))
        starts = [match.start() for match in matches]
        balances = []
        balance = 0
        for match in matches:
            balance += -1 if match.group(1) else 1
            balances.append(balance)

        closes = [None] * len(matches)
        first_at_balance = {}
        for index in range(len(matches) - 1, -1, -1):
            first_at_balance[balances[index]] = index
            balance_before = balances[index - 1] if index else 0
            close_index = first_at_balance.get(balance_before - 1)
            if close_index is not None:
                close_match = matches[close_index]
                closes[index] = (close_match.start(), close_match.end())
        return starts, closes

    def find_close(self, src, pos, maximum, pairs=None):
        """Returns the start and end of the close tag that balances an open tag
        ending at pos, or None if the tag is not closed before maximum.

        pairs -- The result of pair_tags(src), if already known

        """
        if pairs is None:
            pairs = self.pair_tags(src)
        starts, closes = pairs
        index = bisect_left(starts, pos)
        if index == len(starts):
            return None
        close = closes[index]
        if close is None or close[1] > maximum:
            return None
        return close

    def __str__(self):
        return '[%s]' % self.name


class BBCodeRuler(object):

    def __init__(self):
        self.rules = {}

    def push(self, name, wrap, feature=None):
        self.rules[name.lower()] = BBCodeRule(name.lower(), wrap, feature)

    def names(self):
        """Returns a list of the registered tag names."""
        return sorted(self.rules.keys())

    def __getitem__(self, name):
        return self.rules[name]

    def __contains__(self, name):
        return name in self.rules

    def get(self, name, default=None):
        return self.rules.get(name, default)


def _push_token(state, span_token):
    token = state.push(span_token.type, span_token.tag, span_token.nesting)
    token.attrs = dict(span_token.attrs)
    token.content = span_token.content
    return token


def _pairs(state, rule):
    cache = state.env.setdefault("bbcode_pairs", {})
    key = (rule.name, state.src)
    if key not in cache:
        cache[key] = rule.pair_tags(state.src)
    return cache[key]


def _skip_to(state, start, target):
    """Returns True if skipping inline tokens from start lands exactly on target.

    A code span, link or other token running over target means the close tag
    found in the source is not really there.

    """
    pos = state.pos
    state.pos = start
    while state.pos < target:
        state.md.inline.skipToken(state)
    landed = state.pos == target
    state.pos = pos
    return landed


def bbcode_plugin(md, ruler):
    """Adds the bbcode inline rule to a MarkdownIt instance.

    md -- A markdown_it.MarkdownIt instance
    ruler -- The BBCodeRuler holding the tags to recognise

    """

    def bbcode(state, silent):
        src = state.src
        start = state.pos
        maximum = state.posMax

        if src[start] != '[':
            return False

        match = _re_tag.match(src, start, maximum)
        if match is None:
            return False

        tag_name, tag_attribs, end_tag = parse_tag_token(match.group(0))
        if end_tag:
            return False

        rule = ruler.get(tag_name)
        if rule is None or not rule.enabled(state.env):
            return False

        close = rule.find_close(src, match.end(), maximum, _pairs(state, rule))
        if close is None:
            return False
        close_start, close_end = close

        if not _skip_to(state, match.end(), close_start):
            return False

        if not silent:
            tokens = rule.wrap(TagInfo(tag_name, {"_default": tag_attribs}))
            _push_token(state, tokens.open)
            state.pos = match.end()
            state.posMax = close_start
            state.md.inline.tokenize(state)
            _push_token(state, tokens.close)

        state.pos = close_end
        state.posMax = maximum
        return True

    md.inline.ruler.before("link", "bbcode", bbcode)
