"""Markdown rendering with bbcode extensions and a sanitizer."""

__all__ = ["Options",
           "Helper",
           "Engine",
           "EXTENSIONS",
           "create",
           "render_bbcode"]

import logging

import bleach
from bleach.css_sanitizer import CSSSanitizer
from markdown_it import MarkdownIt

from bbcolor import parser
from bbcolor.bbcode import BBCodeRuler, bbcode_plugin


EXTENSIONS = {parser.FEATURE: parser.setup}

_allowed_tags = frozenset({
    'a',
    'b',
    'blockquote',
    'br',
    'code',
    'em',
    'h1',
    'h2',
    'h3',
    'h4',
    'h5',
    'h6',
    'hr',
    'i',
    'img',
    'li',
    'ol',
    'p',
    'pre',
    's',
    'span',
    'strong',
    'u',
    'ul',
})

_allowed_attributes = {
    'a': frozenset({'href', 'title'}),
    'img': frozenset({'alt', 'src', 'title'}),
    'ol': frozenset({'start'}),
}

_css_sanitizer = CSSSanitizer(allowed_css_properties=frozenset({'color', 'background-color'}))


class Options(object):

    def __init__(self):
        self.features = {}


class Helper(object):
    """The interface an extension's setup function registers itself with."""

    def __init__(self, engine, feature):
        self.engine = engine
        self.feature = feature

    @property
    def has_structured_tokenizer(self):
        return self.engine.bbcode_ruler is not None

    def allow_list(self, custom):
        """Adds a (tag, name, value) predicate for attributes the sanitizer should keep."""
        self.engine.allow_list_rules.append((self.feature, custom))

    def register_options(self, callback):
        callback(self.engine.options)

    def add_pre_processor(self, pre_processor):
        self.engine.pre_processors.append((self.feature, pre_processor))

    def register_tokenizer_rule(self, tag_name, wrap):
        assert self.has_structured_tokenizer, "Engine was created without a bbcode tokenizer"
        self.engine.bbcode_ruler.push(tag_name, wrap, feature=self.feature)


class Engine(object):

    def __init__(self, structured=True):
        """Renders markdown with bbcode extensions to sanitized HTML.

        structured -- If True, bbcode tags are recognised by a markdown-it
        inline rule, otherwise extensions fall back to pre-processing the text.

        """
        self.options = Options()
        self.pre_processors = []
        self.allow_list_rules = []
        self.md = MarkdownIt('commonmark')
        if structured:
            self.bbcode_ruler = BBCodeRuler()
            self.md.use(bbcode_plugin, self.bbcode_ruler)
        else:
            self.bbcode_ruler = None

    def add_extension(self, name, setup):
        """Runs an extension's setup function with a helper bound to name."""
        return setup(Helper(self, name))

    def feature_enabled(self, name):
        return bool(self.options.features.get(name))

    def is_allowed_attribute(self, tag, name, value):
        if name in _allowed_attributes.get(tag, ()):
            return True
        for feature, rule in self.allow_list_rules:
            if self.feature_enabled(feature) and rule(tag, name, value):
                return True
        return False

    def pre_process(self, text):
        for feature, pre_processor in self.pre_processors:
            if self.feature_enabled(feature):
                text = pre_processor(text)
        return text

    def sanitize(self, html):
        return bleach.clean(
            html,
            tags=_allowed_tags,
            attributes=self.is_allowed_attribute,
            css_sanitizer=_css_sanitizer,
            strip=True,
        )

    def render(self, text):
        """Converts markdown and bbcode to sanitized HTML.

        text -- String to render, None is treated as an empty string

        """
        logging.debug('Rendering %d characters of bbcode', len(text or ''))
        text = (text or '').replace('\r\n', '\n')
        text = self.pre_process(text)
        html = self.md.render(text, {'features': self.options.features})
        return self.sanitize(html)

    __call__ = render


def create(include=None, exclude=None, structured=True):
    """Create an engine with bbcode extensions installed.

    include -- Iterable of extension names to install. If omitted, all are installed
    exclude -- Iterable of extension names to leave out
    structured -- If True, tags are recognised by the markdown tokenizer,
                  otherwise by pre-processing the text

    """
    if include is not None:
        unknown = set(include) - set(EXTENSIONS)
        if unknown:
            raise ValueError('Unknown extensions: %s' % ', '.join(sorted(unknown)))

    engine = Engine(structured=structured)
    for name, setup in EXTENSIONS.items():
        if include is not None and name not in include:
            continue
        if exclude is not None and name in exclude:
            continue
        engine.add_extension(name, setup)
    return engine


_engine = create()
render_bbcode = _engine.render
