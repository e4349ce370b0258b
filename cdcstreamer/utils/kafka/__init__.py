from .consumer import CDCTopicConsumer, session_group_id, to_raw_message, topic_pattern

__all__ = ['CDCTopicConsumer', 'session_group_id', 'to_raw_message', 'topic_pattern']
