from django import forms

from streamer.handlers import normalize_engine_type
from streamer.models import ConnectionProfile


class ConnectionProfileForm(forms.ModelForm):
    """
    Full connection profile as submitted by the API.

    Always binds to a fresh unsaved instance; the lifecycle manager decides
    whether it becomes an insert or a full replacement.
    """

    class Meta:
        model = ConnectionProfile
        fields = ['name', 'engine_type', 'host', 'port', 'username', 'password', 'database']

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['port'].required = False

    def clean_name(self):
        name = (self.cleaned_data.get('name') or '').strip()
        if len(name) < 2:
            raise forms.ValidationError("Name must be at least 2 characters long.")
        return name

    def clean_host(self):
        host = (self.cleaned_data.get('host') or '').strip()
        if not host:
            raise forms.ValidationError("Host is required.")
        if any(ch.isspace() for ch in host):
            raise forms.ValidationError("Host must not contain whitespace.")
        return host

    def clean_port(self):
        port = self.cleaned_data.get('port')
        if port is not None and not 0 < port < 65536:
            raise forms.ValidationError("Port must be between 1 and 65535.")
        return port

    def clean(self):
        cleaned_data = super().clean()
        engine_type = cleaned_data.get('engine_type')
        if engine_type and cleaned_data.get('port') is None and 'port' not in self.errors:
            cleaned_data['port'] = ConnectionProfile.DEFAULT_PORTS[engine_type]
        return cleaned_data

    def to_profile(self, profile_id=None) -> ConnectionProfile:
        """Unsaved ConnectionProfile from the cleaned data"""
        profile = self.save(commit=False)
        # construct_instance keeps the model default when port was omitted
        profile.port = self.cleaned_data['port']
        if profile_id is not None:
            profile.pk = profile_id
        return profile

    @classmethod
    def from_payload(cls, payload):
        data = dict(payload or {})
        if 'engine_type' in data:
            data['engine_type'] = normalize_engine_type(str(data['engine_type']))
        return cls(data=data)
