"""Errors raised while building or mining a block template"""


class TemplateError(Exception):
    """Base class for problems local to a single block template.

    A template error never terminates the miner, the offending template is
    rejected and mining continues on the last good one.
    """


class MalformedHexInput(TemplateError, ValueError):
    def __init__(self, field, value, reason):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__("{}: {} ({!r})".format(field, reason, value))


class IncompleteTemplate(TemplateError):
    def __init__(self, missing):
        self.missing = tuple(missing)
        super().__init__("template is missing: {}".format(", ".join(self.missing)))


class ArithmeticUnderflow(TemplateError, ArithmeticError):
    pass


class FieldOverflow(TemplateError, OverflowError):
    pass
