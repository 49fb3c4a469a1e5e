"""Flask-WTF forms for the contact intake and the CMS editors.

CSRF is enforced globally in ``app.before_request``, so the forms disable
WTForms' own token.
"""
from flask_wtf import FlaskForm
from wtforms import (
    BooleanField,
    DateTimeLocalField,
    FloatField,
    IntegerField,
    PasswordField,
    SelectField,
    StringField,
    TextAreaField,
)
from wtforms.validators import DataRequired, EqualTo, Length, NumberRange, Optional, Regexp

from .models import (
    ADMIN_ROLES,
    INQUIRY_CATEGORY_LABELS,
    MARKET_TRENDS,
    POST_STATUSES,
    PRODUCT_TYPE_LABELS,
    ROLE_LABELS,
    VOLUME_UNITS,
)
from .utils import EMAIL_RE

# JSON payload keys accepted by the public contact API.
CONTACT_FIELD_ALIASES = {
    'fullName': 'full_name',
    'email': 'email',
    'phone': 'phone',
    'companyName': 'company_name',
    'category': 'category',
    'productType': 'product_type',
    'estimatedVolume': 'estimated_volume',
    'volumeUnit': 'volume_unit',
    'message': 'message',
    'agreeToTerms': 'agree_to_terms',
    'agreedToTerms': 'agree_to_terms',
}

_email_validator = Regexp(EMAIL_RE, message='Invalid email address.')
_slug_validator = Regexp(
    r"^[a-z0-9-]*$",
    message='Slug can only contain lowercase letters, numbers, and hyphens.',
)
_url_validator = Regexp(r"^(https?://|/)\S*$", message='URL must start with http://, https:// or /.')


class _BaseForm(FlaskForm):
    class Meta:
        csrf = False


class InquiryForm(_BaseForm):
    full_name = StringField(
        'Full name',
        validators=[DataRequired('Full name is required.'), Length(min=2, max=200, message='Full name must be at least 2 characters.')],
    )
    email = StringField('Email', validators=[DataRequired('Email is required.'), Length(max=200), _email_validator])
    phone = StringField(
        'Phone',
        validators=[DataRequired('Phone number is required.'), Length(min=10, max=50, message='Please enter a valid phone number.')],
    )
    company_name = StringField(
        'Company',
        validators=[DataRequired('Company name is required.'), Length(min=2, max=200, message='Company name must be at least 2 characters.')],
    )
    category = SelectField('Inquiry type', choices=list(INQUIRY_CATEGORY_LABELS.items()))
    product_type = SelectField('Product', choices=list(PRODUCT_TYPE_LABELS.items()))
    estimated_volume = StringField(
        'Estimated volume',
        validators=[DataRequired('Please specify estimated volume.'), Length(min=1, max=60)],
    )
    volume_unit = SelectField('Unit', choices=[(unit, unit) for unit in VOLUME_UNITS])
    message = TextAreaField(
        'Message',
        validators=[DataRequired('Message is required.'), Length(min=10, max=5000, message='Message must be at least 10 characters.')],
    )
    agree_to_terms = BooleanField('I agree to the terms', validators=[DataRequired('You must agree to the terms and conditions.')])

    @classmethod
    def from_json(cls, payload):
        """Build a form from the camelCase JSON body of the contact API."""
        data = {}
        for key, field_name in CONTACT_FIELD_ALIASES.items():
            if key not in (payload or {}):
                continue
            value = payload[key]
            if field_name == 'agree_to_terms':
                data[field_name] = value is True or str(value).strip().lower() in {'true', '1', 'on', 'yes'}
            elif value is None:
                data[field_name] = ''
            else:
                data[field_name] = str(value).strip()
        return cls(formdata=None, data=data)

    def cleaned_data(self):
        return {
            'full_name': self.full_name.data.strip(),
            'email': self.email.data.strip().lower(),
            'phone': self.phone.data.strip(),
            'company_name': self.company_name.data.strip(),
            'category': self.category.data,
            'product_type': self.product_type.data,
            'estimated_volume': self.estimated_volume.data.strip(),
            'volume_unit': self.volume_unit.data,
            'message': self.message.data.strip(),
        }


class BlogPostForm(_BaseForm):
    title = StringField('Title', validators=[DataRequired(), Length(max=300)])
    slug = StringField('Slug', validators=[Optional(), Length(max=300), _slug_validator])
    excerpt = TextAreaField('Excerpt', validators=[Optional(), Length(max=2000)])
    content = TextAreaField('Content', validators=[DataRequired(), Length(max=200000)])
    category_id = SelectField('Category', coerce=int, choices=[(0, 'No category')])
    status = SelectField('Status', choices=[(status, status.title()) for status in POST_STATUSES])
    scheduled_for = DateTimeLocalField('Publish at', format='%Y-%m-%dT%H:%M', validators=[Optional()])
    featured_image_alt = StringField('Image alt text', validators=[Optional(), Length(max=300)])
    author_name = StringField('Author', validators=[Optional(), Length(max=200)])
    author_role = StringField('Author role', validators=[Optional(), Length(max=120)])
    meta_title = StringField('Meta title', validators=[Optional(), Length(max=300)])
    meta_description = StringField('Meta description', validators=[Optional(), Length(max=500)])
    canonical_url = StringField('Canonical URL', validators=[Optional(), Length(max=500), _url_validator])
    tags = StringField('Tags', validators=[Optional(), Length(max=1000)])
    market_outlook = SelectField('Market outlook', choices=[('', 'None')] + [(trend, trend.title()) for trend in MARKET_TRENDS])
    analysis_summary = TextAreaField('Analysis summary', validators=[Optional(), Length(max=5000)])
    key_factors = TextAreaField('Key factors', validators=[Optional(), Length(max=5000)])


class BlogCategoryForm(_BaseForm):
    name = StringField('Name', validators=[DataRequired(), Length(max=120)])
    description = TextAreaField('Description', validators=[Optional(), Length(max=1000)])
    color = StringField('Color', validators=[Optional(), Regexp(r"^#[0-9a-fA-F]{6}$", message='Color must look like #1a2b3c.')])
    icon = StringField('Icon', validators=[Optional(), Length(max=60)])
    sort_order = IntegerField('Sort order', default=0, validators=[Optional(), NumberRange(min=0, max=1000)])
    is_active = BooleanField('Active', default=True)
    auto_post_enabled = BooleanField('Auto-post enabled')
    auto_post_min_relevance = FloatField('Minimum relevance', default=0.7, validators=[Optional(), NumberRange(min=0, max=1)])
    auto_post_requires_review = BooleanField('Requires review', default=True)


class ProfileForm(_BaseForm):
    full_name = StringField('Full name', validators=[DataRequired('Full name is required.'), Length(max=200)])
    phone = StringField('Phone', validators=[Optional(), Length(max=50)])
    job_title = StringField('Job title', validators=[Optional(), Length(max=120)])
    department = StringField('Department', validators=[Optional(), Length(max=120)])


class PasswordChangeForm(_BaseForm):
    current_password = PasswordField('Current password', validators=[DataRequired()])
    new_password = PasswordField('New password', validators=[DataRequired(), Length(min=10, max=200)])
    confirm_password = PasswordField(
        'Confirm new password',
        validators=[DataRequired(), EqualTo('new_password', message='Passwords do not match.')],
    )


class PasswordResetRequestForm(_BaseForm):
    email = StringField('Email', validators=[DataRequired('Email is required.'), Length(max=200), _email_validator])


class PasswordResetForm(_BaseForm):
    new_password = PasswordField('New password', validators=[DataRequired(), Length(min=10, max=200)])
    confirm_password = PasswordField(
        'Confirm new password',
        validators=[DataRequired(), EqualTo('new_password', message='Passwords do not match.')],
    )


class AdminUserForm(_BaseForm):
    email = StringField('Email', validators=[DataRequired(), Length(max=200), _email_validator])
    full_name = StringField('Full name', validators=[DataRequired(), Length(max=200)])
    role = SelectField('Role', choices=[(role, ROLE_LABELS[role]) for role in ADMIN_ROLES])
    password = PasswordField('Password', validators=[DataRequired(), Length(min=10, max=200)])


def first_errors(form):
    """Map each invalid field to its first message."""
    return {name: messages[0] for name, messages in form.errors.items() if messages}
