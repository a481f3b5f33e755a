"""Handler modules; each registers one webservice function on import."""

from . import delete_question
from . import export_question
from . import export_quiz_data
from . import get_question_list
from . import import_question
from . import import_quiz_data
