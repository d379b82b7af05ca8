"""
Brand Studio - Model Tests
"""
from datetime import datetime

from app.database import db
from app.models.db_models import (
    DBUser, UserRole, DBBlog, DBCampaign, CampaignStatus, DBSocialConnection,
    DBSocialPost, PostStatus, DBEmail, DBEmailTask, TaskPriority, DBPostIdea, DBGroup
)


class TestUserModel:
    """Test User model"""

    def test_password_verification(self, app):
        user = DBUser('Admin@Test.com', 'Test Admin', 'Password123', role=UserRole.ADMIN)

        assert user.email == 'admin@test.com'
        assert user.verify_password('Password123') == True
        assert user.verify_password('wrongpassword') == False
        assert user.is_admin

    def test_unknown_role_becomes_editor(self, app):
        user = DBUser('e@test.com', 'Editor', 'Password123', role='superuser')
        assert user.role == UserRole.EDITOR

    def test_user_to_dict(self, app):
        data = DBUser('admin@test.com', 'Test Admin', 'Password123').to_dict()

        assert data['email'] == 'admin@test.com'
        assert 'password_hash' not in data
        assert 'passwordHash' not in data


class TestBlogModel:

    def test_defaults_and_seo(self, app):
        blog = DBBlog(title='Hello', slug='hello', category='Life', excerpt='x',
                      content='<p>' + 'word ' * 300 + '</p>', image_url='/uploads/a.jpg')
        blog.set_seo({'metaTitle': 'Hello'})

        assert blog.id.startswith('blog_')
        assert blog.published is False
        assert blog.get_seo() == {'metaTitle': 'Hello'}
        assert blog.reading_time == 2
        assert blog.to_dict()['imageUrl'] == '/uploads/a.jpg'


class TestCampaignModel:

    def test_defaults(self, app):
        campaign = DBCampaign(subject='Weekly notes')
        campaign.set_groups(['a1', 2])

        assert campaign.status == CampaignStatus.DRAFT
        assert campaign.get_groups() == ['a1', '2']
        assert campaign.get_segments() == []
        assert campaign.to_dict()['content'] == ''

    def test_group_stats(self, app):
        group = DBGroup('Readers', sender_group_id='g1')
        group.apply_sender_stats({'title': 'All readers', 'recipient_count': '12', 'active_subscribers': 10})

        assert group.title == 'All readers'
        assert group.recipient_count == 12
        assert group.active_subscribers == 10
        assert group.synced_at is not None


class TestSocialModels:

    def test_connection_hides_tokens(self, app):
        connection = DBSocialConnection('instagram', 'secret-token', username='brand|17841|1020')
        data = connection.to_dict()

        assert data['username'] == 'brand'
        assert 'accessToken' not in data
        assert 'secret-token' not in str(data)

    def test_post_round_trip(self, app):
        when = datetime(2030, 1, 1, 9, 0)
        post = DBSocialPost('Hello', ['linkedin', 'twitter'], when,
                            media_assets=[{'type': 'image', 'url': '/uploads/a.jpg'}])
        db.session.add(post)
        db.session.commit()

        stored = db.session.get(DBSocialPost, post.id)
        assert stored.status == PostStatus.SCHEDULED
        assert stored.get_platforms() == ['linkedin', 'twitter']
        assert stored.get_published_on() == {}
        assert stored.to_dict()['scheduledFor'] == '2030-01-01T09:00:00'


class TestEmailModels:

    def test_thread_key_falls_back_to_id(self, app):
        email = DBEmail('g1', subject='Hi')
        assert email.thread_key == email.id
        assert DBEmail('g2', thread_id='t1').thread_key == 't1'

    def test_task_priority_normalized(self, app):
        email = DBEmail('g1', subject='Hi', from_address='a@b.com')
        db.session.add(email)
        db.session.commit()

        task = DBEmailTask(email.id, 'Reply', priority='urgent')
        db.session.add(task)
        db.session.commit()

        data = task.to_dict()
        assert data['priority'] == TaskPriority.MEDIUM
        assert data['email']['subject'] == 'Hi'
        assert email.is_read is False


class TestPostIdeaModel:

    def test_single_platform_string(self, app):
        idea = DBPostIdea('Title', 'Body', platforms='linkedin')
        assert idea.to_dict()['platforms'] == ['linkedin']
