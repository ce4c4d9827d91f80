from django import forms

GENDER_CHOICES = [
    ('Male', 'Male'),
    ('Female', 'Female'),
    ('Other', 'Other'),
]


class PassengerForm(forms.Form):
    seat = forms.IntegerField(min_value=1)
    name = forms.CharField(max_length=100)
    gender = forms.ChoiceField(choices=GENDER_CHOICES)
    age = forms.IntegerField(min_value=1, max_value=120)

    def __init__(self, *args, capacity=None, **kwargs):
        super().__init__(*args, **kwargs)
        if capacity is not None:
            self.fields['seat'] = forms.IntegerField(min_value=1, max_value=capacity)


class BookingRequestForm(forms.Form):
    vehicle_id = forms.CharField(max_length=32)
    date = forms.DateField(input_formats=['%Y-%m-%d'])


class TripSearchForm(forms.Form):
    origin = forms.CharField(max_length=100, required=False)
    destination = forms.CharField(max_length=100, required=False)
    date = forms.DateField(input_formats=['%Y-%m-%d'], required=False)
