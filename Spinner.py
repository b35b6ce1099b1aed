#
# Spinner to show progress.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#

import sys
import random

# Spinner to show progress
spinner = [ "|/-\\", ".oOo", "⠇⠋⠙⠸⠴⠦", "-+|+", "odoqopod" ]


class Spinner:
    """Spinner to show progress.  Show nothing if the stream is not a
    terminal, so it never ends up in redirected output.

    The spinner goes to stderr by default, stdout is for the results.
    It prints the spinner character and a backspace so that whatever
    is printed next overwrites it.  Call clear() when done to wipe the
    last character.

    Silly usage:
      sp = Spinner()

      for i in range(100):
            sp.next()
            time.sleep(0.1)
      sp.clear()
    """

    def __init__(self, stream = None, kind = None):
        self.stream = stream if stream is not None else sys.stderr
        self.idx = 0
        self.shown = False

        if kind is None:
            kind = random.randint(0, len(spinner)-1)

        self.set_kind(kind)


    def set_kind(self, new_kind):
        """Change the spinner kind:
        - 0: |/-\\     - Looks like a spinning line
        - 1: .oOo      - Looks like a pulsing dot
        - 2: ⠇⠋⠙⠸⠴⠦  - Braille, might not work on your terminal
        - 3: -+|+      - Looks like a twirling cross
        - 4: odoqopod  - Looks like a circle with issues

        If you give a number outside the defined range it will be set
        to 0.
        """
        self.kind = new_kind
        if self.kind >= len(spinner) or self.kind < 0: self.kind = 0


    def is_tty(self):
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())


    def next(self):
        """Print the next spinner character and a backspace"""

        # No progress unless we have a terminal
        if not self.is_tty(): return

        self.idx += 1
        if self.idx >= len(spinner[self.kind]): self.idx = 0

        print(spinner[self.kind][self.idx], end="\b", file=self.stream, flush=True)
        self.shown = True


    def clear(self):
        if not self.shown: return

        print(" ", end="\b", file=self.stream, flush=True)
        self.shown = False
