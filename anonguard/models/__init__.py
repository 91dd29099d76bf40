"""AnonGuard models package.

Shared data contracts used by the access gate and the HTTP surface:

  - params.py    — ParamSet, the immutable query-parameter mapping
  - decision.py  — Decision, Action, AllowReason (access gate contract)
  - responses.py — response builders for redirects, denials and 502s
"""
