"""Help formatting shared by every jenkinsstack (sub)parser."""
# Standard Library Imports
import argparse

# Third Party Imports

# Local Application Imports


class CustomRawDescriptionHelpFormatter(argparse.RawDescriptionHelpFormatter):
    """A RawDescriptionHelpFormatter with POSIX-like option listings.

    Differences from the stock formatter: an option that takes a value
    is shown once as '-s, --long=ARG' instead of repeating the metavar
    for each option string, and options are listed alphabetically in
    the help message. Descriptions and epilogs keep their line breaks,
    which the environment variable listing relies on.

    """

    def add_arguments(self, actions):
        # credits go to the following reference:
        # https://stackoverflow.com/questions/12268602/sort-argparse-help-alphabetically
        def _sort_key(action):
            # positionals have no option strings, keep them first
            if not action.option_strings:
                return ""
            return action.option_strings[-1].lstrip("-")

        actions = sorted(actions, key=_sort_key)
        super().add_arguments(actions)

    def _format_action_invocation(self, action):
        if not action.option_strings:
            default = self._get_default_metavar_for_positional(action)
            (metavar,) = self._metavar_formatter(action, default)(1)
            return metavar

        parts = []
        # an optional without a value:
        #    -s, --long
        if action.nargs == 0:
            parts.extend(action.option_strings)
        # an optional with a value:
        #    -s, --long=ARG ==> if both short/long
        #    --long=ARG ==> if just long
        else:
            default = self._get_default_metavar_for_optional(action)
            args_string = self._format_args(action, default)
            for option_string in action.option_strings:
                if option_string == action.option_strings[-1]:
                    parts.append(f"{option_string}={args_string}")
                else:
                    parts.append(option_string)

        return ", ".join(parts)
