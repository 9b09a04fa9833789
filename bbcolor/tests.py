# -*- coding: UTF-8 -*-

import bbcolor
from bbcolor.bbcode import BBCodeRule, TagInfo
import random
import time
import unittest


class FakeHelper(object):

    def __init__(self, has_structured_tokenizer):
        self.has_structured_tokenizer = has_structured_tokenizer
        self.allow_list_rules = []
        self.pre_processors = []
        self.tokenizer_rules = []
        self.options = bbcolor.Options()

    def allow_list(self, custom):
        self.allow_list_rules.append(custom)

    def register_options(self, callback):
        callback(self.options)

    def add_pre_processor(self, pre_processor):
        self.pre_processors.append(pre_processor)

    def register_tokenizer_rule(self, tag_name, wrap):
        self.tokenizer_rules.append((tag_name, wrap))


class TestTagMatcher(unittest.TestCase):

    def test_color(self):
        """Test color tags are converted to spans"""
        tests = [('[color=red]x[/color]', "<span style='color:red'>x</span>"),
                 ('[color=#ff0000]Hello[/color]', "<span style='color:#ff0000'>Hello</span>"),
                 ('[color=red]multi\nline[/color]', "<span style='color:red'>multi\nline</span>"),
                 ('[color=red][/color]', "<span style='color:red'></span>"),
                 ('a [color=red]b[/color] c [color=blue]d[/color] e',
                  "a <span style='color:red'>b</span> c <span style='color:blue'>d</span> e"),
                 ('[color=red]a[/color]b[/color]', "<span style='color:red'>a</span>b[/color]"),
                 ('[color=red]André[/color]', "<span style='color:red'>André</span>")]

        for test, result in tests:
            self.assertEqual(bbcolor.replace_font_color(test), result)

    def test_bgcolor(self):
        """Test bgcolor tags use background-color"""
        tests = [('[bgcolor=navy]x[/bgcolor]', "<span style='background-color:navy'>x</span>"),
                 ('[BGCOLOR="#fff"]x[/BGCOLOR]', "<span style='background-color:#fff'>x</span>"),
                 ('[color=red]x[/color]', '[color=red]x[/color]')]

        for test, result in tests:
            self.assertEqual(bbcolor.replace_font_bgcolor(test), result)

    def test_quotes(self):
        """Test straight and typographic quotes give the same value"""
        tests = ['[color=red]x[/color]',
                 '[color="red"]x[/color]',
                 '[color=“red”]x[/color]',
                 '[color=“red"]x[/color]',
                 '[color="red”]x[/color]']

        for test in tests:
            self.assertEqual(bbcolor.replace_font_color(test), "<span style='color:red'>x</span>")

    def test_case_insensitive(self):
        """Test tag names match in any case"""
        tests = ['[COLOR=Red]x[/COLOR]',
                 '[color=Red]x[/color]',
                 '[Color=Red]x[/cOLOR]']

        for test in tests:
            self.assertEqual(bbcolor.replace_font_color(test), "<span style='color:Red'>x</span>")

    def test_whitespace(self):
        """Test values are stripped of surrounding whitespace"""
        tests = ['[color=  red  ]x[/color]',
                 '[color=" red "]x[/color]',
                 '[color=\tred\n]x[/color]']

        for test in tests:
            self.assertEqual(bbcolor.replace_font_color(test), "<span style='color:red'>x</span>")

    def test_nesting(self):
        """Test nested tags of the same kind are resolved from the inside out"""
        tests = [('[color=red][color=blue]x[/color]y[/color]',
                  "<span style='color:red'><span style='color:blue'>x</span>y</span>"),
                 ('[color=a][color=b][color=c]x[/color][/color][/color]',
                  "<span style='color:a'><span style='color:b'><span style='color:c'>x</span></span></span>"),
                 ('[color=red]a[color=blue]b[/color]c[color=green]d[/color]e[/color]',
                  "<span style='color:red'>a<span style='color:blue'>b</span>c"
                  "<span style='color:green'>d</span>e</span>")]

        for test, result in tests:
            self.assertEqual(bbcolor.replace_font_color(test), result)

    def test_mixed_nesting(self):
        """Test color and bgcolor nest inside each other"""
        tests = [('[color=red][bgcolor=navy]x[/bgcolor][/color]',
                  "<span style='color:red'><span style='background-color:navy'>x</span></span>"),
                 ('[bgcolor=navy][color=red]x[/color]y[/bgcolor]',
                  "<span style='background-color:navy'><span style='color:red'>x</span>y</span>")]

        for test, result in tests:
            self.assertEqual(bbcolor.replace_font_bgcolor(bbcolor.replace_font_color(test)), result)

    def test_passthrough(self):
        """Test malformed and unclosed tags are left as they are"""
        tests = ['[color=red]unclosed',
                 'stray [/color] close',
                 '[color=]x[/color]',
                 '[color=""]x[/color]',
                 '[color]x[/color]',
                 '[color=”red”]x[/color]',
                 '[color="red"x]y[/color]',
                 '[color=red x[/color]',
                 '[color=red]a[color=blue]b',
                 '[colour=red]x[/colour]',
                 'Just text',
                 '']

        for test in tests:
            self.assertEqual(bbcolor.replace_font_color(test), test)

    def test_none(self):
        """Test None is treated as an empty string"""
        self.assertEqual(bbcolor.replace_font_color(None), "")
        self.assertEqual(bbcolor.tag_to_styled_span(None, "color", "color"), "")

    def test_value_with_brackets(self):
        """Test values may contain text that looks like an open tag"""
        result = bbcolor.replace_font_color('[color=[color=red]x[/color]')
        self.assertEqual(result, "<span style='color:[color=red'>x</span>")
        self.assertFalse(bbcolor.is_allowed_style("color:[color=red"))

    def test_content_not_escaped(self):
        """Test contents pass through untouched"""
        result = bbcolor.replace_font_color('[color=red]<b>&amp;</b>[/color]')
        self.assertEqual(result, "<span style='color:red'><b>&amp;</b></span>")

    def test_idempotent(self):
        """Test converting the output again changes nothing"""
        tests = ['[color=red]x[/color]',
                 '[color=red][color=blue]x[/color]y[/color]',
                 'a [color="red"]b[/color] [color=“blue”]c[/color]',
                 '[COLOR=Red]x[/COLOR] and [color=red]unclosed']

        for test in tests:
            once = bbcolor.replace_font_color(test)
            self.assertEqual(bbcolor.replace_font_color(once), once)

    def test_find_occurrences(self):
        """Test a single pass only reports innermost pairs"""
        matcher = bbcolor.TagMatcher(bbcolor.COLOR)

        occurrences = list(matcher.find_occurrences('[color=" red "]x[/color]!'))
        self.assertEqual(occurrences, [bbcolor.MatchOccurrence(' red ', 'x', 0, 24)])

        occurrences = list(matcher.find_occurrences('[color=red][color=blue]x[/color]y[/color]'))
        self.assertEqual(occurrences, [bbcolor.MatchOccurrence('blue', 'x', 11, 32)])

        self.assertEqual(list(matcher.find_occurrences('[color=red]unclosed')), [])

    def test_termination(self):
        """Test the fixed point is reached within one pass per tag plus one"""
        matcher = bbcolor.TagMatcher(bbcolor.COLOR)

        for depth in (1, 2, 5, 20):
            text = '[color=a]' * depth + 'x' + '[/color]' * depth
            result, passes = matcher.fixed_point(text)
            self.assertEqual(passes, depth + 1)
            self.assertNotIn('[/color]', result)

        result, passes = matcher.fixed_point('[color=a]1[/color][color=b]2[/color][color=c]3[/color]')
        self.assertEqual(passes, 2)

        self.assertEqual(matcher.fixed_point('no tags'), ('no tags', 1))

    def test_deep_nesting(self):
        """Test thousands of nested tags are converted quickly"""
        depth = 4000
        text = '[color=a]' * depth + 'x' + '[/color]' * depth

        started = time.time()
        result, passes = bbcolor.replace_font_color.fixed_point(text)
        self.assertLess(time.time() - started, 2)

        self.assertEqual(passes, depth + 1)
        self.assertEqual(result, "<span style='color:a'>" * depth + 'x' + '</span>' * depth)

    def test_single_passes(self):
        """Test fixed_point agrees with repeating replace until nothing changes"""
        matcher = bbcolor.TagMatcher(bbcolor.COLOR)

        def repeat_replace(text):
            passes = 0
            while True:
                previous_text = text
                text = matcher.replace(text)
                passes += 1
                if text == previous_text:
                    return text, passes

        tests = ['[color=[color=a]x[/color]]y[/color]',
                 '[color=a[/color]x[/color]',
                 '[color="[color=a]x[/color]"]y[/color]',
                 '[color=a]x[color=b]y[/color]z[/color]']
        for test in tests:
            self.assertEqual(matcher.fixed_point(test), repeat_replace(test), test)

        fragments = ['[color=a]', '[color="b"]', '[color=“b”]', '[COLOR=c"]', '[color= d ]',
                     '[/color]', '[/COLOR]', '[color=', '[color=[', '[/color', '[color=]',
                     '[', ']', '"', '“', '”', 'x', ' ', '[b]', '[bgcolor=e]']
        rng = random.Random(2718)
        for _ in range(3000):
            text = ''.join(rng.choice(fragments) for _ in range(rng.randint(0, 14)))
            self.assertEqual(matcher.fixed_point(text), repeat_replace(text), text)

    def test_tag_to_styled_span(self):
        """Test other tag names and properties"""
        tests = [('[size=3]x[/size]', 'size', 'font-size', "<span style='font-size:3'>x</span>"),
                 ('[color=red]x[/color]', 'color', 'color', "<span style='color:red'>x</span>"),
                 ('[color=red]x[/color]', 'bgcolor', 'background-color', '[color=red]x[/color]')]

        for test, tag_name, css_property, result in tests:
            self.assertEqual(bbcolor.tag_to_styled_span(test, tag_name, css_property), result)


class TestAllowList(unittest.TestCase):

    def test_allowed(self):
        """Test single color declarations are allowed"""
        tests = ["color:#ff0000",
                 "color:red",
                 "color : Red",
                 "background-color:navy",
                 "background-color:\t#FFF"]

        for test in tests:
            self.assertTrue(bbcolor.is_allowed_style(test), test)

    def test_rejected(self):
        """Test anything but a single color declaration is rejected"""
        tests = ["color:red;background:url(x)",
                 "color:red;",
                 " color:red",
                 "color:red ",
                 "color:red\n",
                 "color:red blue",
                 "color:url(x)",
                 "color:",
                 "font-size:30px",
                 "background:red",
                 "color:[color=red",
                 "color:red' onclick='alert(1)",
                 ""]

        for test in tests:
            self.assertFalse(bbcolor.is_allowed_style(test), test)

    def test_allow_list_rule(self):
        """Test the rule only applies to span styles"""
        self.assertTrue(bbcolor.allow_list_rule("span", "style", "color:red"))
        self.assertFalse(bbcolor.allow_list_rule("span", "style", "color:red;x:y"))
        self.assertFalse(bbcolor.allow_list_rule("div", "style", "color:red"))
        self.assertFalse(bbcolor.allow_list_rule("span", "class", "color:red"))


class TestSpanRule(unittest.TestCase):

    def test_wrap(self):
        """Test the handler builds a styled span token pair"""
        tests = [(bbcolor.COLOR, ' red ', "color:red"),
                 (bbcolor.BGCOLOR, 'navy', "background-color:navy")]

        for tag_spec, value, style in tests:
            tokens = bbcolor.SpanRule(tag_spec).wrap(TagInfo(tag_spec.tag_name, {"_default": value}))
            self.assertEqual(tokens.open,
                             bbcolor.SpanToken("span_open", "span", (("style", style),), "", 1))
            self.assertEqual(tokens.close,
                             bbcolor.SpanToken("span_close", "span", (), "", -1))


class TestSetup(unittest.TestCase):

    def test_pre_processor_mode(self):
        """Test setup falls back to pre-processors without a tokenizer"""
        helper = FakeHelper(has_structured_tokenizer=False)
        strategy = bbcolor.setup(helper)

        self.assertIsInstance(strategy, bbcolor.TextScanStrategy)
        self.assertEqual(helper.tokenizer_rules, [])
        self.assertEqual([p.tag_spec for p in helper.pre_processors], [bbcolor.COLOR, bbcolor.BGCOLOR])
        self.assertEqual(helper.allow_list_rules, [bbcolor.allow_list_rule])
        self.assertEqual(helper.options.features, {"bbcode-color": True})

    def test_tokenizer_mode(self):
        """Test setup registers tokenizer rules when a tokenizer is available"""
        helper = FakeHelper(has_structured_tokenizer=True)
        strategy = bbcolor.setup(helper)

        self.assertIsInstance(strategy, bbcolor.TokenRuleStrategy)
        self.assertEqual(helper.pre_processors, [])
        self.assertEqual([name for name, _wrap in helper.tokenizer_rules], ["color", "bgcolor"])
        self.assertEqual(helper.allow_list_rules, [bbcolor.allow_list_rule])
        self.assertEqual(helper.options.features, {"bbcode-color": True})


class TestBBCode(unittest.TestCase):

    def test_parse_tag_token(self):
        """Test tags are split in to name and attribute"""
        tests = [('[color=red]', ('color', 'red', False)),
                 ('[COLOR="red"]', ('color', 'red', False)),
                 ('[color=“red”]', ('color', 'red', False)),
                 ('[/Color]', ('color', '', True)),
                 ('[b]', ('b', '', False))]

        for test, result in tests:
            self.assertEqual(bbcolor.parse_tag_token(test), result)

    def test_find_close(self):
        """Test the close tag is found by counting nested tags"""
        rule = BBCodeRule('color', None)
        src = '[color=a]x[color=b]y[/color]z[/color]'

        self.assertEqual(rule.find_close(src, 9, len(src)), (29, 37))
        self.assertEqual(rule.find_close(src, 19, len(src)), (20, 28))
        self.assertEqual(rule.find_close('[color=a]x[color=b]y[/color]', 9, 28), None)
        self.assertEqual(rule.find_close(src, 9, 36), None)

        pairs = rule.pair_tags(src)
        self.assertEqual(pairs, ([0, 10, 20, 29], [None, (29, 37), (20, 28), (29, 37)]))
        self.assertEqual(rule.find_close(src, 19, len(src), pairs), (20, 28))

    def test_unclosed_openers(self):
        """Test many unclosed tags do not make the tokenizer quadratic"""
        markup = bbcolor.create(structured=True)
        text = '[color=a]' * 10000 + '[/color]'

        started = time.time()
        html = markup(text)
        self.assertLess(time.time() - started, 5)

        self.assertEqual(html.count('<span'), 1)
        self.assertEqual(html.count('[color=a]'), 9999)

    def test_code_spans(self):
        """Test a close tag inside a code span does not close the tag"""
        markup = bbcolor.create(structured=True)

        html = markup('[color=red]`[/color]`')
        self.assertEqual(html.strip(), '<p>[color=red]<code>[/color]</code></p>')

        html = markup('[color=red]`code`[/color]')
        self.assertRegex(html, r'<span style="color:\s*red;?"><code>code</code></span>')

        html = markup('[color=red]`x[/color]` [color=blue]y[/color]')
        self.assertEqual(html.count('[/color]'), 1)
        self.assertRegex(html, r'<span style="color:\s*blue;?">y</span>')


class TestEngine(unittest.TestCase):

    styled = r'<span style="color:\s*red;?">x</span>'

    def test_modes(self):
        """Test both modes render the same styles"""
        for structured in (True, False):
            markup = bbcolor.create(structured=structured)

            self.assertRegex(markup('[color=red]x[/color]'), self.styled)
            self.assertRegex(markup('[color="red"]x[/color]'), self.styled)
            self.assertRegex(markup('[COLOR=red]x[/COLOR]'), self.styled)
            self.assertRegex(markup('[color=“red”]x[/color]'), self.styled)
            self.assertRegex(markup('[bgcolor=navy]x[/bgcolor]'),
                             r'<span style="background-color:\s*navy;?">x</span>')
            self.assertRegex(markup('[color=red][color=blue]x[/color]y[/color]'),
                             r'<span style="color:\s*red;?"><span style="color:\s*blue;?">x</span>y</span>')
            self.assertRegex(markup('[color=red][bgcolor=navy]x[/bgcolor][/color]'),
                             r'<span style="color:\s*red;?"><span style="background-color:\s*navy;?">x</span></span>')
            self.assertRegex(markup('[bgcolor=navy][color=red]x[/color]y[/bgcolor]'),
                             r'<span style="background-color:\s*navy;?"><span style="color:\s*red;?">x</span>y</span>')

    def test_unclosed(self):
        """Test unclosed tags render as text"""
        for structured in (True, False):
            markup = bbcolor.create(structured=structured)
            self.assertEqual(markup('[color=red]unclosed').strip(), '<p>[color=red]unclosed</p>')

    def test_rejected_style(self):
        """Test spans keep rendering when their style is rejected"""
        for structured in (True, False):
            markup = bbcolor.create(structured=structured)
            html = markup('[color=red;background:url(x)]x[/color]')
            self.assertIn('<span>x</span>', html)
            self.assertNotIn('url(', html)

    def test_injection(self):
        """Test attributes smuggled in a value are dropped"""
        markup = bbcolor.create(structured=False)
        html = markup("[color=red' onclick='alert(1)]x[/color]")
        self.assertNotIn('onclick', html)
        self.assertNotIn('<script', markup('<script>alert(1)</script>'))
        self.assertNotIn('style', markup('<span style="font-size:99px">x</span>'))

    def test_markdown(self):
        """Test tags mix with markdown"""
        for structured in (True, False):
            markup = bbcolor.create(structured=structured)
            html = markup('**bold [color=red]x[/color]**')
            self.assertRegex(html, '<strong>bold ' + self.styled + '</strong>')

    def test_features(self):
        """Test disabled features leave tags as text"""
        for structured in (True, False):
            markup = bbcolor.create(structured=structured)
            markup.options.features['bbcode-color'] = False
            self.assertEqual(markup('[color=red]x[/color]').strip(), '<p>[color=red]x[/color]</p>')

            markup = bbcolor.create(structured=structured, exclude=['bbcode-color'])
            self.assertEqual(markup('[color=red]x[/color]').strip(), '<p>[color=red]x[/color]</p>')

    def test_create(self):
        """Test create validates extension names"""
        self.assertRaises(ValueError, bbcolor.create, include=['bbcode-colour'])
        markup = bbcolor.create(include=['bbcode-color'])
        self.assertEqual(markup.bbcode_ruler.names(), ['bgcolor', 'color'])
        self.assertIsNone(bbcolor.create(structured=False).bbcode_ruler)

    def test_register_without_tokenizer(self):
        """Test tokenizer rules need a tokenizer"""
        markup = bbcolor.Engine(structured=False)
        helper = bbcolor.Helper(markup, 'bbcode-color')
        self.assertRaises(AssertionError, helper.register_tokenizer_rule, 'color', None)

    def test_render_bbcode(self):
        """Test the module level shortcut"""
        self.assertRegex(bbcolor.render_bbcode('[color=red]x[/color]'), self.styled)
        self.assertEqual(bbcolor.render_bbcode(None), '')
