from bbcolor.parser import *
from bbcolor.bbcode import parse_tag_token
from bbcolor.engine import *
