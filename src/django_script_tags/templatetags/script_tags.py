import django.template

from django_script_tags.script import ScriptNode

register = django.template.Library()

ScriptNode.register(register)
