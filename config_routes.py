# -*- coding: utf-8 -*-
"""
Route definitions: message matching rules with handlers.
Pure wiring - all data comes from config.
"""

import config_data as config
from handlers import LogMessage
from handlers import SaveToMaildir
from query_dsl import AllOf
from query_dsl import AnyOf
from query_dsl import Froms
from query_dsl import Match
from query_dsl import Not
from query_dsl import SubjectPatterns

Routes = [
    # Alerts: log loudly
    (Match(AnyOf(SubjectPatterns(*config.alert_subjects))), [LogMessage("WARNING")]),
    # Receipts and notifications from outside: archive
    (
        Match(AllOf(AnyOf(Froms(*config.archive_senders)), Not(Froms(config.mydomain)))),
        [LogMessage(), SaveToMaildir(config.archive_maildir)],
    ),
]

# Everything else
Default = [LogMessage("DEBUG")]
