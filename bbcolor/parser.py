# -*- coding: UTF-8 -*-

__all__ = ["TagSpec",
           "COLOR",
           "BGCOLOR",
           "TAG_SPECS",
           "FEATURE",
           "MatchOccurrence",
           "TagMatcher",
           "tag_to_styled_span",
           "replace_font_color",
           "replace_font_bgcolor",
           "is_allowed_style",
           "allow_list_rule",
           "SpanToken",
           "SpanTokens",
           "SpanRule",
           "TextScanStrategy",
           "TokenRuleStrategy",
           "setup"]

import re
import logging
from bisect import bisect_left, bisect_right
from collections import namedtuple
from operator import itemgetter


FEATURE = "bbcode-color"

TagSpec = namedtuple("TagSpec", "tag_name css_property")

COLOR = TagSpec("color", "color")
BGCOLOR = TagSpec("bgcolor", "background-color")
TAG_SPECS = (COLOR, BGCOLOR)

MatchOccurrence = namedtuple("MatchOccurrence", "attribute_value inner_content start end")

OPEN_QUOTES = '"“'
CLOSE_QUOTES = '"”'

_re_delimiter = re.compile('[\\]"“”]', re.UNICODE)
_re_allowed_style = re.compile(r"(background-)?color\s*:\s*#?[a-zA-Z0-9]+")


def is_allowed_style(value):
    """Returns True if a style attribute value is a single color declaration.

    The value is checked as given, surrounding whitespace included.

    """
    return _re_allowed_style.fullmatch(value) is not None


def allow_list_rule(tag, name, value):
    """Sanitizer callback, called with every (tag, attribute, value) of the output."""
    if tag == "span" and name == "style":
        return is_allowed_style(value)
    return False


class TagMatcher(object):
    """Converts [tag=value]...[/tag] to styled spans for one TagSpec.

    A single pass only replaces pairs whose content does not contain another
    opening tag of the same kind, so nested pairs are resolved from the inside
    out by repeating the pass until the text stops changing.

    While no opening tag's value runs over the start of another tag of the
    same kind, replacing one pair cannot create or break any other tag, and
    the repeated passes amount to pairing the tags with a stack. That is done
    in one go; other text is converted a pass at a time until it gets there.

    """

    def __init__(self, tag_spec):
        self.tag_spec = tag_spec
        name = re.escape(tag_spec.tag_name)
        self._re_open_prefix = re.compile(r"\[%s=" % name, re.IGNORECASE|re.UNICODE)
        self._re_close = re.compile(r"\[/%s\]" % name, re.IGNORECASE|re.UNICODE)
        self.close_length = len(tag_spec.tag_name) + 3

    def scan(self, text):
        """Returns the opening tags as (start, end, value_start, value_end), the
        offsets of the closing tags, and True if the value of any opening tag
        (valid or not) overlaps the start of another tag.

        """
        delimiters = [m.start() for m in _re_delimiter.finditer(text)]
        prefixes = [(m.start(), m.end()) for m in self._re_open_prefix.finditer(text)]
        closes = [m.start() for m in self._re_close.finditer(text)]
        tag_starts = sorted([start for start, _prefix_end in prefixes] + closes)
        num_delimiters = len(delimiters)
        num_tag_starts = len(tag_starts)
        text_len = len(text)
        open_tags = []
        tangled = False

        for start, value_start in prefixes:
            if value_start < text_len and text[value_start] in OPEN_QUOTES:
                value_start += 1
            index = bisect_left(delimiters, value_start)
            if index == num_delimiters:
                break
            value_end = end = delimiters[index]
            next_tag = bisect_right(tag_starts, start)
            if next_tag < num_tag_starts and tag_starts[next_tag] < value_end:
                tangled = True
            if value_end == value_start:
                continue
            if text[end] in CLOSE_QUOTES:
                end += 1
            if end < text_len and text[end] == ']':
                open_tags.append((start, end + 1, value_start, value_end))

        return open_tags, closes, tangled

    def find_open_tags(self, text):
        """Returns (start, end, value_start, value_end) of each opening tag."""
        return self.scan(text)[0]

    def _occurrences(self, text, open_tags, closes):
        if not open_tags:
            return
        open_starts = [open_tag[0] for open_tag in open_tags]
        num_opens = len(open_tags)
        num_closes = len(closes)

        pos = 0
        for start, end, value_start, value_end in open_tags:
            if start < pos:
                continue
            index = bisect_left(closes, end)
            if index == num_closes:
                return
            close_pos = closes[index]

            # Another opening tag before the close means this one is not innermost
            next_open = bisect_left(open_starts, end)
            if next_open < num_opens and open_starts[next_open] < close_pos:
                continue

            pos = close_pos + self.close_length
            yield MatchOccurrence(text[value_start:value_end],
                                  text[end:close_pos],
                                  start,
                                  pos)

    def find_occurrences(self, text):
        """Yields a MatchOccurrence for each pair replaced by a single pass."""
        open_tags, closes, _tangled = self.scan(text)
        return self._occurrences(text, open_tags, closes)

    def render_open(self, value):
        return "<span style='%s:%s'>" % (self.tag_spec.css_property, value.strip())

    def render_close(self):
        return "</span>"

    def render_span(self, value, content):
        return self.render_open(value) + content + self.render_close()

    def _replace(self, text, open_tags, closes):
        text_tokens = []
        append = text_tokens.append
        pos = 0
        for occurrence in self._occurrences(text, open_tags, closes):
            append(text[pos:occurrence.start])
            append(self.render_span(occurrence.attribute_value, occurrence.inner_content))
            pos = occurrence.end
        if not pos:
            return text
        append(text[pos:])
        return "".join(text_tokens)

    def replace(self, text):
        """Replaces innermost tag pairs once."""
        open_tags, closes, _tangled = self.scan(text)
        return self._replace(text, open_tags, closes)

    def replace_nested(self, text, open_tags, closes):
        """Replaces every balanced pair at once.

        Gives the same text as repeating replace, as long as scan reported no
        tangled tags. Returns the text and the number of passes replace would
        have made, i.e. the deepest nesting plus one.

        """
        events = sorted([(open_tag[0], open_tag) for open_tag in open_tags] +
                        [(close_pos, None) for close_pos in closes],
                        key=itemgetter(0))
        replacements = []
        stack = []
        depth = 0

        for pos, open_tag in events:
            if open_tag is not None:
                stack.append([open_tag, 0])
                continue
            if not stack:
                continue
            open_tag, inner_depth = stack.pop()
            pair_depth = inner_depth + 1
            depth = max(depth, pair_depth)
            if stack:
                stack[-1][1] = max(stack[-1][1], pair_depth)
            start, end, value_start, value_end = open_tag
            replacements.append((start, end, self.render_open(text[value_start:value_end])))
            replacements.append((pos, pos + self.close_length, self.render_close()))

        if not replacements:
            return text, 1

        replacements.sort(key=itemgetter(0))
        text_tokens = []
        append = text_tokens.append
        pos = 0
        for start, end, markup in replacements:
            append(text[pos:start])
            append(markup)
            pos = end
        append(text[pos:])
        return "".join(text_tokens), depth + 1

    def fixed_point(self, text):
        """Repeats replace until the text stops changing.

        Returns the converted text and the number of passes made. Each pass
        that changes the text removes at least one closing tag, since a
        replacement never contains one, so the loop always ends.

        text -- String containing bbcode, None is treated as an empty string

        """
        text = text or ""
        passes = 0
        while True:
            open_tags, closes, tangled = self.scan(text)
            if not tangled:
                text, remaining_passes = self.replace_nested(text, open_tags, closes)
                passes += remaining_passes
                break
            previous_text = text
            text = self._replace(text, open_tags, closes)
            passes += 1
            if text == previous_text:
                break
        logging.debug('Converted [%s] tags in %d passes', self.tag_spec.tag_name, passes)
        return text, passes

    def __call__(self, text):
        return self.fixed_point(text)[0]


def tag_to_styled_span(text, tag_name, css_property):
    """Replaces [tag_name=value]...[/tag_name] with spans styled with css_property."""
    return TagMatcher(TagSpec(tag_name, css_property))(text)


replace_font_color = TagMatcher(COLOR)
replace_font_bgcolor = TagMatcher(BGCOLOR)


SpanToken = namedtuple("SpanToken", "type tag attrs content nesting")
SpanTokens = namedtuple("SpanTokens", "open close")


class SpanRule(object):
    """Tokenizer rule handler for one TagSpec.

    The tokenizer has already found the tag boundaries and the attribute, so
    this only builds the token pair for the host to install.

    """

    def __init__(self, tag_spec):
        self.tag_spec = tag_spec

    def wrap(self, tag_info):
        value = tag_info.attrs["_default"].strip()
        style = "%s:%s" % (self.tag_spec.css_property, value)
        return SpanTokens(SpanToken("span_open", "span", (("style", style),), "", 1),
                          SpanToken("span_close", "span", (), "", -1))

    __call__ = wrap


class TextScanStrategy(object):
    """Converts tags in the raw text before the host parses it."""

    name = "pre-processor"

    def install(self, helper):
        for tag_spec in TAG_SPECS:
            helper.add_pre_processor(TagMatcher(tag_spec))


class TokenRuleStrategy(object):
    """Lets the host's bbcode tokenizer find the tags."""

    name = "tokenizer rule"

    def install(self, helper):
        for tag_spec in TAG_SPECS:
            helper.register_tokenizer_rule(tag_spec.tag_name, SpanRule(tag_spec).wrap)


def _enable_feature(options):
    options.features[FEATURE] = True


def setup(helper):
    """Registers color and bgcolor tags with a host helper."""
    helper.allow_list(custom=allow_list_rule)
    helper.register_options(_enable_feature)

    if helper.has_structured_tokenizer:
        strategy = TokenRuleStrategy()
    else:
        strategy = TextScanStrategy()
    logging.debug('Installing %s as %s', FEATURE, strategy.name)
    strategy.install(helper)
    return strategy
